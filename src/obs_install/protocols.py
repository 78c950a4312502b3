"""Protocol definitions for the installer's external collaborators.

The pipeline never shells out or touches the network directly; it goes
through these interfaces. Designing to interfaces enables:
- Loose coupling between the pipeline and the host tools
- Easy substitution of test doubles
- Clear contracts for implementations

All concrete implementations satisfy these protocols structurally (duck typing).
"""

from __future__ import annotations

from pathlib import Path
from typing import BinaryIO, ContextManager, Protocol, Sequence, runtime_checkable


@runtime_checkable
class PackageManager(Protocol):
    """Protocol for host package manager operations.

    Implementations wrap apt/dpkg. Failures raise CommandError.
    """

    def update(self) -> None:
        """Refresh the package index."""
        ...

    def add_repository(self, identifier: str) -> None:
        """Register an extra package repository without refreshing the index.

        Args:
            identifier: Repository identifier, e.g. "ppa:owner/name".
        """
        ...

    def download_to_directory(self, name: str, directory: Path) -> None:
        """Fetch a package file without installing it.

        Args:
            name: Package name.
            directory: Directory the .deb is written to.
        """
        ...

    def install_by_name(self, names: Sequence[str]) -> None:
        """Install packages from the configured repositories.

        Args:
            names: Package names, installed in one transaction.
        """
        ...

    def install_by_path(self, path: Path) -> None:
        """Install a local .deb file, resolving its dependencies.

        Args:
            path: Path to the .deb file.
        """
        ...

    def fix_broken(self) -> None:
        """Ask the package manager to complete half-configured installs."""
        ...

    def status(self, name: str) -> str | None:
        """Get the package database status abbreviation.

        Args:
            name: Package name.

        Returns:
            Two-letter status such as "ii" or "rc", None if unknown.
        """
        ...

    def remove(self, name: str, purge: bool = False) -> None:
        """Remove a package and its now-unneeded dependencies.

        Args:
            name: Package name.
            purge: Also delete configuration files.
        """
        ...

    def depends(self, name: str) -> list[str]:
        """List the direct dependencies of a package's install candidate.

        Args:
            name: Package name.

        Returns:
            Dependency package names, empty if the package is unknown.
        """
        ...


@runtime_checkable
class PlatformIdentity(Protocol):
    """Protocol for distribution identity queries."""

    def is_available(self) -> bool:
        """Check whether the identity tool is present on this host."""
        ...

    def distribution_id(self) -> str:
        """Get the distribution id, e.g. "Ubuntu" or "Linuxmint"."""
        ...

    def distribution_codename(self) -> str:
        """Get the codename of the Ubuntu release the host derives from."""
        ...


@runtime_checkable
class DownloadTransport(Protocol):
    """Protocol for fetching remote resources."""

    def open(self, url: str, offset: int = 0) -> ContextManager[BinaryIO]:
        """Open a URL for reading.

        Args:
            url: Resource URL.
            offset: Byte offset to continue from (0 for a full download).

        Returns:
            Context manager yielding a readable response. The response
            exposes the HTTP ``status`` attribute.
        """
        ...


@runtime_checkable
class FileSystem(Protocol):
    """Protocol for filesystem operations.

    Abstracts filesystem access so the pipeline can be exercised against
    a temporary directory or a mock.
    """

    def exists(self, path: Path) -> bool:
        """Check if a path exists (dangling symlinks count)."""
        ...

    def is_dir(self, path: Path) -> bool:
        """Check if a path is a directory."""
        ...

    def mkdir(self, path: Path, parents: bool = False, exist_ok: bool = False) -> None:
        """Create a directory."""
        ...

    def remove(self, path: Path) -> None:
        """Remove a file, symlink or directory tree."""
        ...

    def move(self, src: Path, dst: Path) -> None:
        """Move a file or directory."""
        ...

    def symlink(self, target: Path, link: Path) -> None:
        """Create a symbolic link at ``link`` pointing to ``target``."""
        ...

    def glob(self, root: Path, pattern: str) -> list[Path]:
        """Expand a glob pattern relative to ``root``."""
        ...

    def iterdir(self, path: Path) -> list[Path]:
        """List the direct children of a directory."""
        ...

    def chown_tree(self, path: Path, uid: int, gid: int) -> None:
        """Recursively change ownership, not following symlinks."""
        ...
