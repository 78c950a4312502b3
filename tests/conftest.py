"""Shared test fixtures."""

from __future__ import annotations

import io
import os
import tarfile
import urllib.error
import zipfile
from pathlib import Path
from typing import Sequence

import pytest
from rich.console import Console

from obs_install.config import InstallerConfig
from obs_install.console import Reporter
from obs_install.errors import CommandError
from obs_install.host import PlatformContext
from obs_install.manifest import Settings


# ============================================================================
# Test Doubles
# ============================================================================


class FakePackageManager:
    """In-memory package manager that records every call.

    Satisfies the PackageManager protocol structurally.
    """

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.statuses: dict[str, str] = {}
        self.dependencies: dict[str, list[str]] = {}
        self.failing: set[str] = set()
        self.fail_path_installs = 0

    def _maybe_fail(self, key: str, argv: list[str]) -> None:
        if key in self.failing:
            raise CommandError(argv, 100, f"E: {key} failed")

    def update(self) -> None:
        self.calls.append(("update",))
        self._maybe_fail("update", ["apt-get", "update"])

    def add_repository(self, identifier: str) -> None:
        self.calls.append(("add_repository", identifier))
        self._maybe_fail("add_repository", ["add-apt-repository", identifier])

    def download_to_directory(self, name: str, directory: Path) -> None:
        self.calls.append(("download", name))
        self._maybe_fail(name, ["apt-get", "download", name])
        (directory / f"{name}_1.0-1_amd64.deb").write_bytes(b"!<arch>\n")

    def install_by_name(self, names: Sequence[str]) -> None:
        self.calls.append(("install", tuple(names)))
        for name in names:
            self._maybe_fail(name, ["apt-get", "install", name])
        for name in names:
            self.statuses[name] = "ii"

    def install_by_path(self, path: Path) -> None:
        self.calls.append(("install_path", path))
        if self.fail_path_installs:
            self.fail_path_installs -= 1
            raise CommandError(["apt-get", "install", str(path)], 100, "unmet dependencies")
        self.statuses[path.name.split("_")[0]] = "ii"

    def fix_broken(self) -> None:
        self.calls.append(("fix_broken",))

    def status(self, name: str) -> str | None:
        self.calls.append(("status", name))
        return self.statuses.get(name)

    def remove(self, name: str, purge: bool = False) -> None:
        self.calls.append(("purge" if purge else "remove", name))
        self.statuses.pop(name, None)

    def depends(self, name: str) -> list[str]:
        self.calls.append(("depends", name))
        return list(self.dependencies.get(name, []))


class FakeResponse(io.BytesIO):
    """Readable HTTP response carrying a status code."""

    def __init__(self, data: bytes, status: int = 200) -> None:
        super().__init__(data)
        self.status = status


class FakeTransport:
    """Serves canned bodies by URL and records every request.

    Satisfies the DownloadTransport protocol structurally.
    """

    def __init__(self, bodies: dict[str, bytes] | None = None) -> None:
        self.bodies = bodies or {}
        self.requests: list[tuple[str, int]] = []
        self.honour_range = True

    def open(self, url: str, offset: int = 0) -> FakeResponse:
        self.requests.append((url, offset))
        if url not in self.bodies:
            raise urllib.error.HTTPError(url, 404, "Not Found", None, None)
        body = self.bodies[url]
        if offset and self.honour_range:
            if offset >= len(body):
                raise urllib.error.HTTPError(url, 416, "Range Not Satisfiable", None, None)
            return FakeResponse(body[offset:], status=206)
        return FakeResponse(body)


# ============================================================================
# Archive Builders
# ============================================================================


def make_zip(path: Path, files: dict[str, bytes]) -> Path:
    """Write a zip archive holding files (member name -> content)."""
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return path


def make_tar_bytes(files: dict[str, bytes]) -> bytes:
    """Build a gzip-compressed tarball in memory."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


def make_tar(path: Path, files: dict[str, bytes]) -> Path:
    """Write a gzip-compressed tarball holding files."""
    path.write_bytes(make_tar_bytes(files))
    return path


def make_tar_in_zip(path: Path, tar_name: str, files: dict[str, bytes]) -> Path:
    """Write a zip whose only member is a tarball holding files."""
    return make_zip(path, {tar_name: make_tar_bytes(files)})


def zip_bytes(files: dict[str, bytes]) -> bytes:
    """Build a zip archive in memory."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buffer.getvalue()


def tar_in_zip_bytes(tar_name: str, files: dict[str, bytes]) -> bytes:
    """Build a zip holding a single tarball, in memory."""
    return zip_bytes({tar_name: make_tar_bytes(files)})


def list_tree(root: Path) -> list[str]:
    """Relative POSIX paths of every entry below root, sorted."""
    return sorted(p.relative_to(root).as_posix() for p in root.rglob("*"))


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def settings() -> Settings:
    """Minimal manifest settings."""
    return Settings(
        repository="ppa:example/obs",
        base_packages=["libobs0", "obs-plugins", "obs-studio"],
        distributions=["Ubuntu", "Linuxmint"],
        codenames=["focal", "jammy"],
    )


@pytest.fixture
def home_dir(tmp_path: Path) -> Path:
    """Home directory of the invoking user."""
    home = tmp_path / "home" / "alex"
    home.mkdir(parents=True)
    return home


@pytest.fixture
def installer_config(home_dir: Path, settings: Settings) -> InstallerConfig:
    """Config owned by the test process so ownership changes succeed."""
    return InstallerConfig.for_user(
        user="alex",
        uid=os.getuid(),
        gid=os.getgid(),
        home=home_dir,
        settings=settings,
    )


@pytest.fixture
def qt5_platform() -> PlatformContext:
    """Focal host with Qt5 builds."""
    return PlatformContext(distribution_id="Ubuntu", codename="focal", toolkit_major=5)


@pytest.fixture
def qt6_platform() -> PlatformContext:
    """Jammy host with Qt6 builds."""
    return PlatformContext(distribution_id="Ubuntu", codename="jammy", toolkit_major=6)


# ============================================================================
# Collaborator Fixtures
# ============================================================================


@pytest.fixture
def package_manager() -> FakePackageManager:
    """Recording package manager."""
    return FakePackageManager()


@pytest.fixture
def transport() -> FakeTransport:
    """Transport with no URLs registered."""
    return FakeTransport()


@pytest.fixture
def output() -> io.StringIO:
    """Captured reporter output."""
    return io.StringIO()


@pytest.fixture
def reporter(output: io.StringIO) -> Reporter:
    """Reporter writing plain text into the output fixture."""
    return Reporter(Console(file=output, force_terminal=False, width=200, highlight=False))
