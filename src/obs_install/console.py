"""Progress output for the installer."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape


class Reporter:
    """Prints status-glyph progress lines."""

    def __init__(self, console: Console | None = None) -> None:
        """Initialize reporter.

        Args:
            console: Rich console to print to. Defaults to stdout.
        """
        self.console = console or Console(highlight=False)

    def banner(self, message: str) -> None:
        """Show the run banner."""
        self.console.print(f"[bold]{escape(message)}[/bold]")

    def info(self, message: str) -> None:
        """Show a progress message.

        Args:
            message: Info message.
        """
        self.console.print(f"  \\[[green]+[/green]] {escape(message)}")

    def warn(self, message: str) -> None:
        """Show a non-fatal problem.

        Args:
            message: Warning message.
        """
        self.console.print(f"  \\[[yellow]*[/yellow]] WARNING! {escape(message)}")

    def error(self, message: str) -> None:
        """Show a fatal problem. The caller ends the run.

        Args:
            message: Error message.
        """
        self.console.print(f"  \\[[red]![/red]] ERROR! {escape(message)}")
