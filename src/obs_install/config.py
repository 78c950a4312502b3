"""Runtime configuration resolved from the invoking user."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict

from obs_install.manifest import Settings


class InstallerConfig(BaseModel):
    """Where everything goes and who ends up owning it.

    Built once during preflight and passed to every component.
    """

    model_config = ConfigDict(frozen=True)

    user: str
    uid: int
    gid: int
    home: Path
    cache_dir: Path
    config_dir: Path
    plugin_dir: Path
    theme_dir: Path
    download_timeout: float

    @classmethod
    def for_user(
        cls, user: str, uid: int, gid: int, home: Path, settings: Settings
    ) -> InstallerConfig:
        """Derive all directories from a user's home directory.

        Args:
            user: Invoking user name.
            uid: Invoking user id.
            gid: Invoking user's primary group id.
            home: Invoking user's home directory.
            settings: Manifest settings naming the directories.

        Returns:
            Configured InstallerConfig.
        """
        config_dir = home / settings.config_dir
        return cls(
            user=user,
            uid=uid,
            gid=gid,
            home=home,
            cache_dir=home / settings.cache_dir,
            config_dir=config_dir,
            plugin_dir=config_dir / "plugins",
            theme_dir=config_dir / "themes",
            download_timeout=settings.download_timeout,
        )
