"""Application context for dependency injection.

This module separates object creation from object use. Services are
built once, after preflight has resolved the configuration, and handed to
the orchestrator together.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from obs_install.config import InstallerConfig
from obs_install.console import Reporter
from obs_install.extract import ExtractorEngine
from obs_install.fetch import ArtifactFetcher
from obs_install.host import PlatformContext
from obs_install.manifest import Manifest
from obs_install.packages import PackageInstaller
from obs_install.protocols import FileSystem
from obs_install.rules import RuleEngine


def _default_filesystem() -> FileSystem:
    """Create the default filesystem implementation."""
    from obs_install.filesystem import RealFileSystem

    return RealFileSystem()


@dataclass
class AppContext:
    """Container for the resolved configuration and every pipeline service."""

    config: InstallerConfig
    platform: PlatformContext
    manifest: Manifest
    fetcher: ArtifactFetcher
    packages: PackageInstaller
    extractors: ExtractorEngine
    rules: RuleEngine
    reporter: Reporter
    filesystem: FileSystem = field(default_factory=_default_filesystem)


def create_context(
    config: InstallerConfig,
    platform: PlatformContext,
    manifest: Manifest,
    reporter: Reporter,
    packages: PackageInstaller | None = None,
) -> AppContext:
    """Factory for pipeline dependencies.

    Creates all services with proper wiring. Use this in production code.
    For tests, construct AppContext directly with test doubles.

    Args:
        config: Configuration resolved during preflight.
        platform: Platform context resolved during preflight.
        manifest: Loaded installation manifest.
        reporter: Progress reporter.
        packages: Optional package installer (apt-backed if not provided).

    Returns:
        Configured AppContext with all dependencies.
    """
    from obs_install.filesystem import RealFileSystem

    filesystem = RealFileSystem()
    packages = packages or PackageInstaller.create(config.cache_dir)

    return AppContext(
        config=config,
        platform=platform,
        manifest=manifest,
        fetcher=ArtifactFetcher.create(config.cache_dir, timeout=config.download_timeout),
        packages=packages,
        extractors=ExtractorEngine.create(packages),
        rules=RuleEngine(manifest.rules, filesystem),
        reporter=reporter,
        filesystem=filesystem,
    )
