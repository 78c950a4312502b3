"""Host checks and repository setup run before any package is installed."""

from __future__ import annotations

import logging
import os
import pwd
import re
from pathlib import Path
from typing import Callable, Mapping

from obs_install.config import InstallerConfig
from obs_install.console import Reporter
from obs_install.errors import CommandError, PreconditionError
from obs_install.host import PlatformContext
from obs_install.manifest import Settings
from obs_install.protocols import PackageManager, PlatformIdentity

logger = logging.getLogger(__name__)

# Toolkit major assumed when the application package names no Qt library
LEGACY_TOOLKIT = 5

QT_LIBRARY = re.compile(r"^libqt(\d+)")


class Preflight:
    """Verifies the host and resolves configuration and platform context.

    Follows Separate Use from Creation: every host lookup is injected so
    the checks run without root in tests.
    """

    def __init__(
        self,
        settings: Settings,
        identity: PlatformIdentity,
        manager: PackageManager,
        reporter: Reporter,
        environ: Mapping[str, str] | None = None,
        geteuid: Callable[[], int] = os.geteuid,
        getpwnam: Callable[[str], pwd.struct_passwd] = pwd.getpwnam,
    ) -> None:
        self.settings = settings
        self.identity = identity
        self.manager = manager
        self.reporter = reporter
        self.environ = os.environ if environ is None else environ
        self.geteuid = geteuid
        self.getpwnam = getpwnam

    def run(self) -> tuple[InstallerConfig, PlatformContext]:
        """Run every check in order, then register the repository.

        Returns:
            Tuple of (InstallerConfig, PlatformContext).

        Raises:
            PreconditionError: On the first failed check or repository step.
        """
        self.require_root()
        config = self.resolve_user()
        self.ensure_identity_tool()
        distribution_id = self.check_distribution()
        codename = self.check_codename(distribution_id)
        self.setup_repository()
        toolkit_major = self.detect_toolkit()
        return config, PlatformContext(
            distribution_id=distribution_id,
            codename=codename,
            toolkit_major=toolkit_major,
        )

    def require_root(self) -> None:
        if self.geteuid() != 0:
            raise PreconditionError("You must use sudo to run this installer.")
        self.reporter.info("Running as root.")

    def resolve_user(self) -> InstallerConfig:
        """Resolve the user sudo was invoked by and derive all directories."""
        user = self.environ.get("SUDO_USER", "")
        if not user or user == "root":
            raise PreconditionError("You must use sudo from a regular user account.")

        try:
            entry = self.getpwnam(user)
        except KeyError as e:
            raise PreconditionError(f"User '{user}' not found in the password database.") from e

        self.reporter.info(f"Called via sudo by {user}.")
        return InstallerConfig.for_user(
            user=user,
            uid=entry.pw_uid,
            gid=entry.pw_gid,
            home=Path(entry.pw_dir),
            settings=self.settings,
        )

    def ensure_identity_tool(self) -> None:
        """Make sure lsb_release exists, installing it once if needed."""
        if self.identity.is_available():
            self.reporter.info("Detected lsb_release.")
            return

        self.reporter.warn(f"lsb_release not detected. Installing {self.settings.bootstrap_package}.")
        try:
            self.manager.install_by_name([self.settings.bootstrap_package])
        except CommandError as e:
            logger.debug("Installing %s failed: %s", self.settings.bootstrap_package, e)

        if not self.identity.is_available():
            raise PreconditionError("lsb_release not detected. Quitting.")
        self.reporter.info("Detected lsb_release.")

    def check_distribution(self) -> str:
        distribution_id = self.identity.distribution_id()
        if distribution_id not in self.settings.distributions:
            raise PreconditionError(f"{distribution_id} is not supported.")
        self.reporter.info(f"{distribution_id} detected.")
        return distribution_id

    def check_codename(self, distribution_id: str) -> str:
        codename = self.identity.distribution_codename()
        if codename not in self.settings.codenames:
            raise PreconditionError(
                f"{distribution_id} {codename.capitalize()} is not supported because "
                "it is not derived from a supported Ubuntu release."
            )
        self.reporter.info(f"Based on Ubuntu {codename.capitalize()}.")
        return codename

    def setup_repository(self) -> None:
        """Register the application repository and refresh the index.

        Raises:
            PreconditionError: If either step fails.
        """
        repository = self.settings.repository
        self.reporter.info(f"Adding {repository}.")
        try:
            self.manager.add_repository(repository)
        except CommandError as e:
            raise PreconditionError(f"Failed to add {repository}: {e}") from e

        self.reporter.info("Updating apt.")
        try:
            self.manager.update()
        except CommandError as e:
            raise PreconditionError(f"Failed to update the package index: {e}") from e

    def detect_toolkit(self) -> int:
        """Detect the Qt major version the application packages are built against.

        Reads the dependencies of the application package, so it must run
        after setup_repository() has made the repository's build visible.
        """
        package = self.settings.toolkit_package
        majors = []
        for dependency in self.manager.depends(package):
            match = QT_LIBRARY.match(dependency)
            if match:
                majors.append(int(match.group(1)))

        if not majors:
            self.reporter.warn(f"{package} depends on no Qt library. Assuming Qt{LEGACY_TOOLKIT}.")
            return LEGACY_TOOLKIT
        major = max(majors)
        self.reporter.info(f"Using Qt{major} builds of plugins.")
        return major
