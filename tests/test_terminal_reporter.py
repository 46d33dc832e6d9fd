"""Tests for the rich terminal reporter."""

from __future__ import annotations

import io

from rich.console import Console

from gcr.models.coverage import RunResult
from gcr.reporters.terminal import CLIReporter, _coverage_bar, _coverage_color


def _reporter() -> tuple[CLIReporter, io.StringIO]:
    buffer = io.StringIO()
    return CLIReporter(Console(file=buffer, width=120, color_system=None)), buffer


def test_coverage_color() -> None:
    assert _coverage_color(70, 80) == "red"
    assert _coverage_color(82, 80) == "yellow"
    assert _coverage_color(90, 80) == "green"


def test_coverage_bar_is_clamped() -> None:
    assert _coverage_bar(150, "green", width=4).count("█") == 4
    assert _coverage_bar(0, "red", width=4).count("░") == 4


def test_run_summary_table() -> None:
    reporter, buffer = _reporter()
    result = RunResult(
        success=True,
        coverage_types=["backend", "frontend"],
        current_coverage={"backend": 85.0, "frontend": 60.0},
        previous_coverage={"backend": 80.0, "frontend": 0.0},
        pr=42,
    )

    reporter.print_run_summary(result, {"backend": 80.0, "frontend": 70.0}, 0.0)

    output = buffer.getvalue()
    assert "Backend" in output
    assert "increased by 5.00%" in output
    assert "no baseline" in output
    assert "Reported to PR #42" in output


def test_regression_is_described() -> None:
    reporter, buffer = _reporter()
    result = RunResult(
        success=True,
        coverage_types=["backend"],
        current_coverage={"backend": 78.0},
        previous_coverage={"backend": 80.0},
    )

    reporter.print_run_summary(result, {}, 0.0)

    assert "decreased by 2.00%" in buffer.getvalue()
    assert "PR #" not in buffer.getvalue()


def test_messages() -> None:
    reporter, buffer = _reporter()

    reporter.print_success("done")
    reporter.print_warning("careful")
    reporter.print_error("broken")

    output = buffer.getvalue()
    assert "✓ done" in output
    assert "⚠ careful" in output
    assert "✗ broken" in output
