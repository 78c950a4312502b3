"""Exception hierarchy for obs-install.

Fatal errors stop the run. Extraction and rule errors only cost the
artifact that raised them.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

__all__ = [
    "CommandError",
    "DownloadError",
    "ExtractionError",
    "FatalError",
    "InstallError",
    "InstallerError",
    "ManifestError",
    "PackageNotFoundError",
    "PreconditionError",
    "RuleError",
]


class InstallerError(Exception):
    """Base class for all installer errors."""

    pass


class FatalError(InstallerError):
    """Error that terminates the whole run."""

    pass


class PreconditionError(FatalError):
    """Host is not in a state the installer can work with."""

    pass


class ManifestError(InstallerError):
    """Manifest file could not be loaded or failed validation."""

    pass


class CommandError(FatalError):
    """A collaborator command exited non-zero."""

    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = "") -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        detail = f": {stderr.strip()}" if stderr.strip() else ""
        super().__init__(f"Command failed ({returncode}): {' '.join(self.argv)}{detail}")


class DownloadError(FatalError):
    """Artifact could not be fetched into the cache."""

    def __init__(self, url: str, cause: object) -> None:
        self.url = url
        self.cause = cause
        super().__init__(f"Failed to download {url}: {cause}")


class PackageNotFoundError(FatalError):
    """Package manager did not leave the expected .deb in the cache."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"No downloaded package file found for '{name}'")


class InstallError(FatalError):
    """Package manager failed to install a package or local file."""

    def __init__(self, target: str | Path, exit_code: int) -> None:
        self.target = target
        self.exit_code = exit_code
        super().__init__(f"Failed to install {target} (exit code {exit_code})")


class ExtractionError(InstallerError):
    """Archive could not be extracted."""

    def __init__(self, source: Path, cause: object) -> None:
        self.source = source
        self.cause = cause
        super().__init__(f"Failed to extract {source.name}: {cause}")


class RuleError(InstallerError):
    """Post-install rule could not be applied."""

    def __init__(self, rule_id: str, reason: str) -> None:
        self.rule_id = rule_id
        self.reason = reason
        super().__init__(f"Post-install rule '{rule_id}' failed: {reason}")
