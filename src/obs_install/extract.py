"""Archive extraction, one strategy per archive kind.

Every extractor returns the set of top-level paths it wrote below the
target directory. Decoder and I/O failures surface as ExtractionError;
deb installs go through the PackageInstaller and fail with InstallError.

Pattern: Strategy - the engine looks up the extractor for a kind, so new
kinds are added without touching the orchestrator.
"""

from __future__ import annotations

import logging
import os
import stat
import tarfile
import zipfile
from abc import ABC, abstractmethod
from fnmatch import fnmatchcase
from pathlib import Path, PurePosixPath

import py7zr
from py7zr.exceptions import ArchiveError

from obs_install.errors import ExtractionError
from obs_install.manifest import ArchiveKind
from obs_install.packages import PackageInstaller

logger = logging.getLogger(__name__)


def _matches(name: str, subpath: str | None) -> bool:
    """Check an archive member name against an optional glob."""
    return subpath is None or fnmatchcase(name, subpath)


def _top_level(target_dir: Path, names: list[str]) -> set[Path]:
    """Map archive member names to the top-level paths they create."""
    tops: set[Path] = set()
    for name in names:
        parts = [p for p in PurePosixPath(name).parts if p not in ("/", ".", "")]
        if parts:
            tops.add(target_dir / parts[0])
    return tops


class BaseExtractor(ABC):
    """Base class for archive extractors."""

    kind: ArchiveKind

    @abstractmethod
    def extract(self, archive: Path, target_dir: Path, subpath: str | None = None) -> set[Path]:
        """Extract an archive below target_dir.

        Args:
            archive: Cache entry to extract.
            target_dir: Directory to extract into.
            subpath: Optional glob of member names to extract.

        Returns:
            Top-level paths written below target_dir.
        """
        ...


class DebExtractor(BaseExtractor):
    """Hands .deb files to the package manager."""

    kind = ArchiveKind.DEB

    def __init__(self, packages: PackageInstaller) -> None:
        self.packages = packages

    def extract(self, archive: Path, target_dir: Path, subpath: str | None = None) -> set[Path]:
        self.packages.install(archive)
        return set()


class ZipExtractor(BaseExtractor):
    """Extracts zip archives, restoring stored unix permissions and symlinks."""

    kind = ArchiveKind.ZIP

    def extract(self, archive: Path, target_dir: Path, subpath: str | None = None) -> set[Path]:
        try:
            with zipfile.ZipFile(archive) as zf:
                members = [m for m in zf.infolist() if _matches(m.filename, subpath)]
                if subpath is not None and not members:
                    raise ExtractionError(archive, f"no members match '{subpath}'")
                for member in members:
                    mode = member.external_attr >> 16
                    if stat.S_ISLNK(mode):
                        self._link(zf, member, archive, target_dir)
                        continue
                    written = Path(zf.extract(member, target_dir))
                    if mode & 0o777 and not member.is_dir():
                        written.chmod(mode & 0o777)
        except (zipfile.BadZipFile, OSError) as e:
            raise ExtractionError(archive, e) from e
        return _top_level(target_dir, [m.filename for m in members])

    @staticmethod
    def _link(zf: zipfile.ZipFile, member: zipfile.ZipInfo, archive: Path, target_dir: Path) -> None:
        """Recreate a symlink member, which zipfile would write as a plain file."""
        name = PurePosixPath(member.filename)
        link_target = PurePosixPath(os.fsdecode(zf.read(member)))
        for path in (name, link_target):
            if path.is_absolute() or ".." in path.parts:
                raise ExtractionError(archive, f"unsafe link {member.filename} -> {link_target}")

        link = target_dir.joinpath(*name.parts)
        link.parent.mkdir(parents=True, exist_ok=True)
        if link.is_symlink() or link.is_file():
            link.unlink()
        os.symlink(str(link_target), link)


class TarInZipExtractor(BaseExtractor):
    """Streams the single tarball inside a zip straight into tarfile."""

    kind = ArchiveKind.TAR_IN_ZIP

    def extract(self, archive: Path, target_dir: Path, subpath: str | None = None) -> set[Path]:
        names: list[str] = []
        try:
            with zipfile.ZipFile(archive) as zf:
                members = [m for m in zf.infolist() if not m.is_dir()]
                if len(members) != 1:
                    raise ExtractionError(
                        archive, f"expected one tarball inside, found {len(members)} files"
                    )
                with zf.open(members[0]) as stream:
                    with tarfile.open(fileobj=stream, mode="r|*") as tar:
                        for member in tar:
                            if not _matches(member.name, subpath):
                                continue
                            tar.extract(member, target_dir, filter="data")
                            names.append(member.name)
        except (zipfile.BadZipFile, tarfile.TarError, OSError) as e:
            raise ExtractionError(archive, e) from e
        return _top_level(target_dir, names)


class TarExtractor(BaseExtractor):
    """Extracts tarballs with any supported compression."""

    kind = ArchiveKind.TAR

    def extract(self, archive: Path, target_dir: Path, subpath: str | None = None) -> set[Path]:
        try:
            with tarfile.open(archive, mode="r:*") as tar:
                members = [m for m in tar.getmembers() if _matches(m.name, subpath)]
                if subpath is not None and not members:
                    raise ExtractionError(archive, f"no members match '{subpath}'")
                tar.extractall(target_dir, members=members, filter="data")
        except (tarfile.TarError, OSError) as e:
            raise ExtractionError(archive, e) from e
        return _top_level(target_dir, [m.name for m in members])


class SevenZipExtractor(BaseExtractor):
    """Extracts 7z archives whose layout already matches the destination."""

    kind = ArchiveKind.SEVEN_ZIP

    def extract(self, archive: Path, target_dir: Path, subpath: str | None = None) -> set[Path]:
        try:
            with py7zr.SevenZipFile(archive, mode="r") as sz:
                names = [n for n in sz.getnames() if _matches(n, subpath)]
                if subpath is None:
                    sz.extractall(path=target_dir)
                elif names:
                    sz.extract(path=target_dir, targets=names)
                else:
                    raise ExtractionError(archive, f"no members match '{subpath}'")
        except (ArchiveError, OSError) as e:
            raise ExtractionError(archive, e) from e
        return _top_level(target_dir, names)


class ExtractorEngine:
    """Dispatches extraction to the strategy registered for each kind."""

    def __init__(self, extractors: list[BaseExtractor]) -> None:
        self._extractors = {e.kind: e for e in extractors}

    @classmethod
    def create(cls, packages: PackageInstaller) -> ExtractorEngine:
        """Create an engine with every supported archive kind registered.

        Args:
            packages: Installer used for deb artifacts.

        Returns:
            Configured ExtractorEngine.
        """
        return cls(
            [
                DebExtractor(packages),
                ZipExtractor(),
                TarInZipExtractor(),
                TarExtractor(),
                SevenZipExtractor(),
            ]
        )

    def get_extractor(self, kind: ArchiveKind) -> BaseExtractor:
        """Get the extractor for a kind.

        Raises:
            ValueError: If no extractor handles the kind.
        """
        extractor = self._extractors.get(kind)
        if extractor is None:
            raise ValueError(f"No extractor for archive kind: {kind.value}")
        return extractor

    def extract(
        self,
        kind: ArchiveKind,
        archive: Path,
        target_dir: Path,
        subpath: str | None = None,
    ) -> set[Path]:
        """Extract archive with the strategy for kind."""
        logger.debug("Extracting %s (%s) into %s", archive, kind.value, target_dir)
        return self.get_extractor(kind).extract(archive, target_dir, subpath)
