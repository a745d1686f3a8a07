from __future__ import annotations

"""Centralized console output for CLI commands."""

from enum import Enum
from typing import Any

from rich.console import Console
from rich.table import Table


class OutputLevel(Enum):
    """Output verbosity level."""

    QUIET = 0  # Only errors and requested data
    NORMAL = 1  # Standard
    VERBOSE = 2  # All details


class Outputter:
    """Output handler for quiet/normal/verbose modes.

    Tables are always printed since they are the data the user asked for;
    decoration and status messages follow the output level.
    """

    def __init__(self, level: OutputLevel = OutputLevel.NORMAL, console: Console | None = None):
        """Initialize outputter.

        Args:
            level: Output verbosity level
            console: Console to print to (default: stdout)
        """
        self.level = level
        self.console = console or Console()
        self.err_console = Console(stderr=True)

    def header(self, title: str, **kwargs: Any) -> None:
        """Show a header with key/value details.

        Args:
            title: Header line
            **kwargs: Additional key-value pairs to display
        """
        if self.level == OutputLevel.QUIET:
            return

        self.console.print(title, style="bold")
        for key, value in kwargs.items():
            # Convert key from snake_case to Title Case
            display_key = key.replace("_", " ").title()
            self.console.print(f"{display_key}: {value}")
        self.console.print()

    def info(self, message: str) -> None:
        if self.level == OutputLevel.QUIET:
            return
        self.console.print(message)

    def verbose(self, message: str) -> None:
        if self.level != OutputLevel.VERBOSE:
            return
        self.console.print(message)

    def success(self, message: str) -> None:
        if self.level == OutputLevel.QUIET:
            return
        self.console.print(f"✓ {message}", style="green")

    def warning(self, message: str) -> None:
        if self.level == OutputLevel.QUIET:
            return
        self.console.print(f"⚠️  {message}", style="yellow")

    def error(self, message: str) -> None:
        """Show error message (always shown, even in quiet mode)."""
        self.err_console.print(f"✗ {message}", style="red")

    def table(self, title: str | None, columns: list[str], rows: list[list[Any]]) -> None:
        """Print rows as a table.

        Args:
            title: Table title (omitted in quiet mode)
            columns: Column headers
            rows: Row values, converted with str()
        """
        table = Table(title=title if self.level != OutputLevel.QUIET else None)
        for column in columns:
            table.add_column(column, overflow="fold")
        for row in rows:
            table.add_row(*("" if value is None else str(value) for value in row))
        self.console.print(table)

    def summary(self, **stats: Any) -> None:
        """Show summary statistics.

        Args:
            **stats: Statistics as key-value pairs
        """
        if self.level == OutputLevel.QUIET:
            return

        self.console.print("\n=== Summary ===", style="bold")
        for key, value in stats.items():
            display_key = key.replace("_", " ").title()
            self.console.print(f"  {display_key}: {value}")
