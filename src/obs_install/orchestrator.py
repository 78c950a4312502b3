"""Runs the installation from repository setup to ownership fix-up."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from obs_install.console import Reporter
from obs_install.context import AppContext, create_context
from obs_install.errors import ExtractionError, PreconditionError, RuleError
from obs_install.manifest import ArtifactDescriptor, Manifest, Target
from obs_install.preflight import Preflight

logger = logging.getLogger(__name__)

ContextFactory = Callable[..., AppContext]


class Orchestrator:
    """Drives the pipeline over the manifest, strictly in order.

    Install failures propagate and end the run. Extraction and rule
    failures cost only the artifact concerned.
    """

    def __init__(self, ctx: AppContext) -> None:
        self.ctx = ctx
        self.config = ctx.config
        self.platform = ctx.platform
        self.reporter = ctx.reporter
        self.fs = ctx.filesystem

    def run(self) -> None:
        """Run every step after preflight and repository setup."""
        self.prepare_directories()
        self.install_base_packages()
        self.remove_orphans()
        for descriptor in self.ctx.manifest.eligible(self.platform):
            self.install_artifact(descriptor)
        self.finalize()

    def target_dir(self, target: Target) -> Path:
        """Map an installation target to its directory."""
        if target is Target.PLUGINS:
            return self.config.plugin_dir
        if target is Target.THEMES:
            return self.config.theme_dir
        if target is Target.CONFIG:
            return self.config.config_dir
        # deb files are installed straight from the cache
        return self.config.cache_dir

    def prepare_directories(self) -> None:
        """Rebuild the theme directory; create cache and plugin directories.

        Raises:
            PreconditionError: If a directory cannot be removed or created.
        """
        try:
            if self.fs.exists(self.config.theme_dir):
                self.fs.remove(self.config.theme_dir)
            for directory in (self.config.cache_dir, self.config.plugin_dir, self.config.theme_dir):
                self.fs.mkdir(directory, parents=True, exist_ok=True)
        except OSError as e:
            target = e.filename or self.config.config_dir
            raise PreconditionError(f"Failed to prepare {target}: {e.strerror or e}") from e

    def install_base_packages(self) -> None:
        """Cache and install the application packages in manifest order.

        The cached .debs allow a manual rollback if a later release breaks.
        """
        for name in self.ctx.manifest.settings.base_packages:
            self.reporter.info(f"Downloading: {name} (apt)")
            deb = self.ctx.packages.download_package(name)
            self.reporter.info(f"Installing: {deb.name} (apt)")
            self.ctx.packages.install(deb)

    def remove_orphans(self) -> None:
        """Remove what other toolkit branches installed and this one lacks.

        Raises:
            InstallError: If a package removal fails.
            PreconditionError: If a leftover file cannot be removed.
        """
        for descriptor in self.ctx.manifest.orphans(self.platform):
            if descriptor.package and self.ctx.packages.remove(descriptor.package):
                self.reporter.info(
                    f"Removed: {descriptor.package} (incompatible with Qt{self.platform.toolkit_major})"
                )
            root = self.target_dir(descriptor.target)
            for provided in descriptor.provides:
                for path in self.fs.glob(root, provided):
                    try:
                        self.fs.remove(path)
                    except OSError as e:
                        raise PreconditionError(f"Failed to remove {path}: {e.strerror or e}") from e
                    self.reporter.info(
                        f"Removed: {path.name} (incompatible with Qt{self.platform.toolkit_major})"
                    )

    def install_artifact(self, descriptor: ArtifactDescriptor) -> bool:
        """Fetch, extract and post-process one artifact.

        Args:
            descriptor: Artifact to install.

        Returns:
            True if every step succeeded, False if a step was skipped
            after a warning.

        Raises:
            DownloadError: If the artifact cannot be fetched.
            InstallError: If a package install or removal fails.
        """
        self.reporter.info(f"Installing: {descriptor.filename} ({descriptor.label})")
        archive = self.ctx.fetcher.fetch(descriptor.url, descriptor.filename)
        root = self.target_dir(descriptor.target)

        try:
            extracted = self.ctx.extractors.extract(
                descriptor.kind, archive, root, descriptor.subpath
            )
        except ExtractionError as e:
            self.reporter.warn(str(e))
            return False
        logger.debug("%s wrote %s", descriptor.id, sorted(str(p) for p in extracted))

        variant = self.ctx.rules.select(descriptor.rule, self.platform.toolkit_major)
        if variant is not None:
            for name in variant.remove_packages:
                if self.ctx.packages.remove(name):
                    self.reporter.info(f"Removed: {name} (replaced by {descriptor.id})")
            try:
                self.ctx.rules.apply(descriptor.rule, root, self.platform.toolkit_major)
            except RuleError as e:
                self.reporter.warn(str(e))
                return False

        dependencies = list(descriptor.dependencies)
        if variant is not None:
            dependencies += [p for p in variant.packages if p not in dependencies]
        if dependencies:
            self.reporter.info(f"Installing: {' '.join(dependencies)} (apt)")
            self.ctx.packages.install_packages(dependencies)
        return True

    def finalize(self) -> None:
        """Hand the config and cache directories back to the invoking user.

        Raises:
            PreconditionError: If ownership cannot be changed.
        """
        for directory in (self.config.config_dir, self.config.cache_dir):
            try:
                self.fs.chown_tree(directory, self.config.uid, self.config.gid)
            except OSError as e:
                raise PreconditionError(
                    f"Failed to set ownership of {directory}: {e.strerror or e}"
                ) from e
        self.reporter.info(f"Ownership of {self.config.config_dir} set to {self.config.user}.")
        self.reporter.info("All done! OBS Studio and add-ons are installed.")


def run_installation(
    manifest: Manifest,
    preflight: Preflight,
    reporter: Reporter,
    context_factory: ContextFactory = create_context,
) -> None:
    """Run preflight, wire the services, then the whole pipeline.

    Args:
        manifest: Loaded installation manifest.
        preflight: Configured preflight checks.
        reporter: Progress reporter.
        context_factory: Builds the AppContext from the resolved values.

    Raises:
        FatalError: On any fatal step failure.
    """
    config, platform = preflight.run()
    ctx = context_factory(config, platform, manifest, reporter)
    Orchestrator(ctx).run()
