"""OBS Studio installer for Ubuntu and derivatives."""

__version__ = "0.1.0"

# Export protocol interfaces for type hints and dependency injection
from obs_install.protocols import (
    DownloadTransport,
    FileSystem,
    PackageManager,
    PlatformIdentity,
)

__all__ = [
    "__version__",
    "DownloadTransport",
    "FileSystem",
    "PackageManager",
    "PlatformIdentity",
]
