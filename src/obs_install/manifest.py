"""Installation manifest: settings, post-install rules and artifacts."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from obs_install.errors import ManifestError
from obs_install.fetch import url_basename
from obs_install.host import PlatformContext
from obs_install.rules import PostInstallRule

DEFAULT_MANIFEST = Path(__file__).parent / "data" / "manifest.yaml"
MANIFEST_ENV = "OBS_INSTALL_MANIFEST"


class ArchiveKind(str, Enum):
    """Packaging format of an artifact."""

    DEB = "deb"
    ZIP = "zip"
    TAR_IN_ZIP = "tar-in-zip"
    TAR = "tar"
    SEVEN_ZIP = "7z"


class Target(str, Enum):
    """Where an artifact ends up."""

    SYSTEM = "system"
    PLUGINS = "plugins"
    THEMES = "themes"
    CONFIG = "config"


class Settings(BaseModel):
    """Host requirements and fixed installation parameters."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    repository: str
    base_packages: list[str]
    distributions: list[str]
    codenames: list[str]
    bootstrap_package: str = "lsb-release"
    toolkit_package: str = "obs-studio"
    cache_dir: str = ".cache/obs-install"
    config_dir: str = ".config/obs-studio"
    download_timeout: float = 60


class ArtifactDescriptor(BaseModel):
    """One downloadable unit and how to install it."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    url: str
    kind: ArchiveKind
    filename: str
    target: Target
    subpath: str | None = None
    rule: str | None = None
    dependencies: list[str] = Field(default_factory=list)
    package: str | None = None
    provides: list[str] = Field(default_factory=list)
    codenames: list[str] = Field(default_factory=list)
    toolkit: int | None = None

    @model_validator(mode="before")
    @classmethod
    def _fill_defaults(cls, data: Any) -> Any:
        """Default filename to the URL basename and target to the kind's."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if not data.get("filename") and data.get("url"):
            data["filename"] = url_basename(data["url"])
        if not data.get("target"):
            kind = data.get("kind")
            data["target"] = Target.SYSTEM if kind in (ArchiveKind.DEB, "deb") else Target.PLUGINS
        return data

    @model_validator(mode="after")
    def _check_consistency(self) -> ArtifactDescriptor:
        if not self.filename:
            raise ValueError(f"{self.id}: cannot derive filename from url, set one explicitly")
        if (self.kind is ArchiveKind.DEB) != (self.target is Target.SYSTEM):
            raise ValueError(f"{self.id}: only deb artifacts target the system package database")
        return self

    @property
    def label(self) -> str:
        """Short description of where the artifact goes, for progress lines."""
        if self.target is Target.SYSTEM:
            return "deb"
        if self.target is Target.THEMES:
            return "theme"
        return "plugin"

    def applies_to(self, platform: PlatformContext) -> bool:
        """Check codename and toolkit gates against the host."""
        if self.codenames and platform.codename not in self.codenames:
            return False
        if self.toolkit is not None and self.toolkit != platform.toolkit_major:
            return False
        return True


class Manifest(BaseModel):
    """The ordered artifact list driving the installation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    settings: Settings
    rules: dict[str, PostInstallRule] = Field(default_factory=dict)
    artifacts: list[ArtifactDescriptor] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_references(self) -> Manifest:
        seen: set[str] = set()
        for artifact in self.artifacts:
            if artifact.rule is not None and artifact.rule not in self.rules:
                raise ValueError(f"{artifact.id}: unknown rule '{artifact.rule}'")
            # the same id may appear once per toolkit branch
            key = f"{artifact.id}@{artifact.toolkit}"
            if key in seen:
                raise ValueError(f"duplicate artifact id '{artifact.id}'")
            seen.add(key)
        return self

    def eligible(self, platform: PlatformContext) -> list[ArtifactDescriptor]:
        """Artifacts to install on this host, in declaration order."""
        return [a for a in self.artifacts if a.applies_to(platform)]

    def orphans(self, platform: PlatformContext) -> list[ArtifactDescriptor]:
        """Artifacts of other toolkit branches missing from the active one.

        These may be left over from a run on a different toolkit version
        and have to be removed.
        """
        active = {a.id for a in self.artifacts if a.toolkit == platform.toolkit_major}
        orphans: list[ArtifactDescriptor] = []
        for artifact in self.artifacts:
            if artifact.toolkit is None or artifact.toolkit == platform.toolkit_major:
                continue
            if artifact.id in active or any(o.id == artifact.id for o in orphans):
                continue
            orphans.append(artifact)
        return orphans

    @classmethod
    def from_file(cls, path: Path) -> Manifest:
        """Load a manifest from a YAML file.

        Args:
            path: Path to the manifest.

        Returns:
            Validated Manifest.

        Raises:
            ManifestError: If the file is missing, not YAML, or invalid.
        """
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise ManifestError(f"Cannot read manifest {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ManifestError(f"Invalid YAML in {path}: {e}") from e

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ManifestError(f"Invalid manifest {path}: {e}") from e


def load_manifest(path: Path | None = None) -> Manifest:
    """Load the manifest from path, $OBS_INSTALL_MANIFEST, or the bundled default."""
    if path is None:
        override = os.environ.get(MANIFEST_ENV)
        path = Path(override) if override else DEFAULT_MANIFEST
    return Manifest.from_file(path)
