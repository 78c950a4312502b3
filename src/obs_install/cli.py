"""Command-line entry point using Typer."""

from __future__ import annotations

import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from obs_install import __version__
from obs_install.console import Reporter
from obs_install.context import create_context
from obs_install.errors import FatalError, ManifestError
from obs_install.host import LsbPlatformIdentity
from obs_install.manifest import Manifest, load_manifest
from obs_install.orchestrator import ContextFactory, run_installation
from obs_install.packages import AptPackageManager
from obs_install.preflight import Preflight

BANNER = "Open Broadcaster Software - Installer for Ubuntu & derivatives"

app = typer.Typer(
    name="obs-install",
    help="Install OBS Studio with a curated set of plugins and themes.",
    add_completion=False,
)

console = Console()


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"obs-install v{__version__}")
        raise typer.Exit()


def configure_logging(verbose: bool) -> None:
    """Send log records to stderr through rich; debug detail only when verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def run(
    manifest: Manifest | None = None,
    preflight: Preflight | None = None,
    reporter: Reporter | None = None,
    context_factory: ContextFactory = create_context,
) -> None:
    """Run the installer, converting fatal errors into exit status 1.

    Args:
        manifest: Manifest to install (bundled or $OBS_INSTALL_MANIFEST if None).
        preflight: Preflight checks (host-backed if None).
        reporter: Progress reporter.
        context_factory: Builds the AppContext after preflight.

    Raises:
        typer.Exit: With code 1 on any fatal error.
    """
    reporter = reporter or Reporter()
    reporter.banner(BANNER)

    try:
        manifest = manifest or load_manifest()
        preflight = preflight or Preflight(
            settings=manifest.settings,
            identity=LsbPlatformIdentity(),
            manager=AptPackageManager(),
            reporter=reporter,
        )
        run_installation(manifest, preflight, reporter, context_factory)
    except (FatalError, ManifestError) as e:
        reporter.error(str(e))
        raise typer.Exit(1) from e


@app.command()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
    verbose: Annotated[
        bool, typer.Option("--verbose", help="Log every command that is run")
    ] = False,
) -> None:
    """Install OBS Studio, plugins and themes for the user running sudo."""
    configure_logging(verbose)
    run()


if __name__ == "__main__":
    app()
