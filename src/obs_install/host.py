"""Host platform identity and the resolved platform context."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Callable

from pydantic import BaseModel, ConfigDict

from obs_install.command import CmdResult, run_cmd
from obs_install.errors import PreconditionError

logger = logging.getLogger(__name__)

OS_RELEASE = Path("/etc/os-release")

# Keys tried in order for the Ubuntu release a derivative is built on
CODENAME_KEYS = ["UBUNTU_CODENAME", "VERSION_CODENAME"]


class PlatformContext(BaseModel):
    """Facts about the host, resolved once during preflight."""

    model_config = ConfigDict(frozen=True)

    distribution_id: str
    codename: str
    toolkit_major: int


def parse_os_release(content: str) -> dict[str, str]:
    """Parse os-release KEY=value lines, unquoting values.

    Args:
        content: File content.

    Returns:
        Mapping of keys to values.
    """
    values: dict[str, str] = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip().strip("\"'")
    return values


class LsbPlatformIdentity:
    """Distribution identity from lsb_release and /etc/os-release.

    Satisfies the PlatformIdentity protocol structurally.
    """

    def __init__(
        self,
        os_release: Path = OS_RELEASE,
        runner: Callable[..., CmdResult] = run_cmd,
    ) -> None:
        self.os_release = os_release
        self.run = runner

    def is_available(self) -> bool:
        """Check for the lsb_release executable."""
        return shutil.which("lsb_release") is not None

    def distribution_id(self) -> str:
        return self.run(["lsb_release", "--id", "--short"]).stdout.strip()

    def distribution_codename(self) -> str:
        """Get the Ubuntu codename the host derives from.

        Raises:
            PreconditionError: If /etc/os-release is missing.
        """
        if not self.os_release.exists():
            raise PreconditionError(f"{self.os_release} not found")

        values = parse_os_release(self.os_release.read_text())
        for key in CODENAME_KEYS:
            if values.get(key):
                return values[key]

        logger.debug("No codename in %s, asking lsb_release", self.os_release)
        return self.run(["lsb_release", "--codename", "--short"]).stdout.strip()
