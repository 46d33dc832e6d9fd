"""Terminal reporter with rich output formatting."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

from gcr.reporters.comparison import (
    DEFAULT_THRESHOLD,
    describe_change,
    display_name,
    format_percentage,
    is_regression,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from gcr.models.coverage import RunResult

console = Console()

# Coverage within this many points above the threshold is shown as "close"
_WARNING_MARGIN = 5.0
_BAR_WIDTH = 20


def _coverage_color(value: float, threshold: float) -> str:
    """Return a Rich color name for a coverage value relative to its threshold."""
    if value < threshold:
        return "red"
    if value < threshold + _WARNING_MARGIN:
        return "yellow"
    return "green"


def _coverage_bar(value: float, color: str, width: int = _BAR_WIDTH) -> str:
    """Build a bar proportional to a 0-100 percentage."""
    filled = max(0, min(width, round(value / 100 * width)))
    return f"[{color}]{'█' * filled}[/{color}][dim]{'░' * (width - filled)}[/dim]"


class CLIReporter:
    """Rich terminal output for coverage runs."""

    def __init__(self, output: Console | None = None) -> None:
        """Initialize the CLI reporter."""
        self.console = output or console

    def print_header(self, title: str) -> None:
        """Print a bold header."""
        self.console.print(f"\n[bold cyan]{title}[/bold cyan]\n")

    def print_success(self, message: str) -> None:
        """Print a success message."""
        self.console.print(f"[green]✓[/green] {message}")

    def print_error(self, message: str) -> None:
        """Print an error message."""
        self.console.print(f"[red]✗[/red] {message}")

    def print_warning(self, message: str) -> None:
        """Print a warning message."""
        self.console.print(f"[yellow]⚠[/yellow] {message}")

    def print_info(self, message: str) -> None:
        """Print an info message."""
        self.console.print(f"[dim]{message}[/dim]")

    def print_run_summary(
        self,
        result: RunResult,
        thresholds: Mapping[str, float],
        max_diff: float,
    ) -> None:
        """Print a table of current vs. previous coverage for every reported type."""
        table = Table(title="Coverage", show_header=True, header_style="bold")
        table.add_column("Type", style="bold")
        table.add_column("Current", justify="right")
        table.add_column("Previous", justify="right")
        table.add_column("Change")
        table.add_column("Threshold", justify="right")
        table.add_column("", min_width=_BAR_WIDTH)

        for coverage_type in result.coverage_types:
            current = result.current_coverage.get(coverage_type, 0.0)
            previous = result.previous_coverage.get(coverage_type, 0.0)
            threshold = thresholds.get(coverage_type, DEFAULT_THRESHOLD)
            color = _coverage_color(current, threshold)

            if previous == 0:
                change = "[dim]no baseline[/dim]"
            elif is_regression(previous, current, max_diff):
                change = f"[red]{describe_change(previous, current)}[/red]"
            else:
                change = describe_change(previous, current)

            table.add_row(
                display_name(coverage_type),
                f"[{color}]{format_percentage(current)}%[/{color}]",
                f"{format_percentage(previous)}%" if previous else "[dim]-[/dim]",
                change,
                f"{format_percentage(threshold)}%",
                _coverage_bar(current, color),
            )

        self.console.print()
        self.console.print(table)

        if result.pr is not None:
            self.print_info(f"Reported to PR #{result.pr}")
        self.console.print()


reporter = CLIReporter()
