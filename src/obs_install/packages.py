"""Package manager access: the apt collaborator and the installer built on it."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Sequence

from obs_install.command import CmdResult, run_cmd
from obs_install.errors import CommandError, InstallError, PackageNotFoundError
from obs_install.protocols import PackageManager

logger = logging.getLogger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}
APT_GET = ["apt-get", "-q=2", "-y"]

# dpkg status abbreviations
STATUS_INSTALLED = "ii"
STATUS_CONFIG_FILES = "rc"

Runner = Callable[..., CmdResult]


class AptPackageManager:
    """Package manager backed by apt-get, dpkg-query and apt-cache.

    Satisfies the PackageManager protocol structurally.
    """

    def __init__(self, runner: Runner = run_cmd) -> None:
        """Initialize with a command runner.

        Args:
            runner: Callable with the signature of run_cmd.
        """
        self.run = runner

    def update(self) -> None:
        """Refresh the package index."""
        self.run([*APT_GET, "update"], env=APT_ENV)

    def add_repository(self, identifier: str) -> None:
        """Register a repository; the index refresh is left to update()."""
        self.run(["add-apt-repository", "-y", "--no-update", identifier], env=APT_ENV)

    def download_to_directory(self, name: str, directory: Path) -> None:
        """Fetch a .deb into directory without installing it."""
        self.run([*APT_GET, "download", name], env=APT_ENV, cwd=directory)

    def install_by_name(self, names: Sequence[str]) -> None:
        """Install packages from the configured repositories."""
        self.run([*APT_GET, "install", *names], env=APT_ENV)

    def install_by_path(self, path: Path) -> None:
        """Install a local .deb file."""
        # apt-get only treats the argument as a file when it contains a slash
        self.run([*APT_GET, "install", str(path.resolve())], env=APT_ENV)

    def fix_broken(self) -> None:
        """Complete interrupted installs and pull in missing dependencies."""
        self.run([*APT_GET, "--fix-broken", "install"], env=APT_ENV)

    def status(self, name: str) -> str | None:
        """Return the dpkg status abbreviation for name, None if unknown."""
        result = self.run(
            ["dpkg-query", "-W", "-f=${db:Status-Abbrev}", name],
            check=False,
        )
        if result.returncode != 0:
            return None
        return result.stdout.strip()[:2] or None

    def remove(self, name: str, purge: bool = False) -> None:
        """Remove or purge name along with now-unneeded dependencies."""
        action = "purge" if purge else "remove"
        self.run([*APT_GET, "--autoremove", action, name], env=APT_ENV)

    def depends(self, name: str) -> list[str]:
        """List the packages the install candidate of name depends on.

        Alternatives are included. An unknown package yields an empty list.
        """
        result = self.run(["apt-cache", "depends", name], check=False)
        if result.returncode != 0:
            return []
        names = []
        for line in result.stdout.splitlines():
            key, _, value = line.strip().lstrip("|").partition(":")
            if key in ("Depends", "PreDepends") and value.strip():
                names.append(value.split()[0])
        return names


class PackageInstaller:
    """Installs, queries and removes system packages.

    Follows Separate Use from Creation: constructor requires all dependencies.
    Use factory method `create()` for production instantiation with defaults.
    """

    def __init__(self, manager: PackageManager, cache_dir: Path) -> None:
        """Initialize the installer.

        Args:
            manager: Package manager collaborator.
            cache_dir: Directory downloaded .deb files are kept in.
        """
        self.manager = manager
        self.cache_dir = cache_dir

    @classmethod
    def create(cls, cache_dir: Path, manager: PackageManager | None = None) -> PackageInstaller:
        """Factory method for production instantiation.

        Args:
            cache_dir: Directory downloaded .deb files are kept in.
            manager: Optional package manager (apt if not provided).

        Returns:
            Configured PackageInstaller instance.
        """
        return cls(manager=manager or AptPackageManager(), cache_dir=cache_dir)

    def download_package(self, name: str) -> Path:
        """Download a package into the cache without installing it.

        The cached copy allows a manual rollback if a later release breaks.

        Args:
            name: Package name.

        Returns:
            Path to the downloaded .deb.

        Raises:
            InstallError: If the package manager refuses the download.
            PackageNotFoundError: If no matching .deb appears in the cache.
        """
        try:
            self.manager.download_to_directory(name, self.cache_dir)
        except CommandError as e:
            raise InstallError(name, e.returncode) from e

        candidates = sorted(
            self.cache_dir.glob(f"{name}_*.deb"),
            key=lambda p: p.stat().st_mtime,
        )
        if not candidates:
            raise PackageNotFoundError(name)
        return candidates[-1]

    def install(self, target: str | Path) -> None:
        """Install a package by name, or a local .deb by path.

        Local files that fail to install get one dependency-repair pass and
        a retry before the failure is reported.

        Args:
            target: Package name (str) or path to a .deb (Path).

        Raises:
            InstallError: If installation fails.
        """
        if not isinstance(target, Path):
            self.install_packages([target])
            return

        try:
            self.manager.install_by_path(target)
            return
        except CommandError as e:
            logger.debug("Install of %s failed, attempting dependency repair: %s", target, e)

        try:
            self.manager.fix_broken()
            self.manager.install_by_path(target)
        except CommandError as e:
            raise InstallError(target, e.returncode) from e

    def install_packages(self, names: Sequence[str]) -> None:
        """Install several packages in one transaction.

        Raises:
            InstallError: If installation fails.
        """
        if not names:
            return
        try:
            self.manager.install_by_name(list(names))
        except CommandError as e:
            raise InstallError(" ".join(names), e.returncode) from e

    def is_installed(self, name: str) -> bool:
        """Check whether a package is fully installed."""
        return self.manager.status(name) == STATUS_INSTALLED

    def remove(self, name: str, purge: bool = False) -> bool:
        """Remove a package if present.

        A package left in the config-files state is purged.

        Args:
            name: Package name.
            purge: Purge configuration files as well.

        Returns:
            True if a removal was performed, False if nothing was installed.

        Raises:
            InstallError: If the package manager fails to remove the package.
        """
        status = self.manager.status(name)
        if status not in (STATUS_INSTALLED, STATUS_CONFIG_FILES):
            return False

        try:
            self.manager.remove(name, purge=purge or status == STATUS_CONFIG_FILES)
        except CommandError as e:
            raise InstallError(name, e.returncode) from e
        return True
