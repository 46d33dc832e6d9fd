"""Coverage comparison and report rendering.

Every function here is pure: given thresholds, ``max_diff`` and the
current/previous snapshots it computes pass/fail decisions, status check
payloads and the Markdown PR comment. No I/O happens in this module.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from gcr.models.coverage import StatusDescriptor

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

DEFAULT_THRESHOLD = 80.0
DEFAULT_CONTEXT_PREFIX = "code-coverage"

COMMENT_HEADING = "## Code Coverage Report"
TABLE_HEADER = (
    "| Coverage Type | Current | Previous | Change | Threshold | Status |\n"
    "|--------------|---------|-----------|---------|-----------|---------|"
)

_ICON_UP = "📈"
_ICON_DOWN = "📉"
_ICON_SAME = "🔄"
_ICON_PASS = "✅"
_ICON_FAIL = "❌"
_ICON_WARN = "⚠️"


# ── Formatting helpers ───────────────────────────────────────────


def format_percentage(value: float) -> str:
    """Render a percentage value without a trailing ``.0`` for whole numbers."""
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return str(number)


def format_diff(diff: float) -> str:
    """Render a percentage-point difference with two decimals and a sign."""
    return f"+{diff:.2f}" if diff >= 0 else f"{diff:.2f}"


def describe_change(previous: float, current: float) -> str:
    """Short sentence for the change between two values, e.g. ``increased by 1.25%``."""
    diff = current - previous
    if diff == 0:
        return "unchanged"
    direction = "increased" if diff > 0 else "decreased"
    return f"{direction} by {abs(diff):.2f}%"


def display_name(coverage_type: str) -> str:
    """Capitalize the first letter only (``lambda`` -> ``Lambda``)."""
    return coverage_type[:1].upper() + coverage_type[1:]


def _threshold_for(coverage_type: str, thresholds: Mapping[str, float]) -> float:
    threshold = thresholds.get(coverage_type)
    return DEFAULT_THRESHOLD if threshold is None else threshold


# Summary percentages carry two decimals
_DROP_PRECISION = 2


def coverage_drop(previous: float, current: float) -> float:
    """Percentage points lost from *previous* to *current*, rounded to two decimals."""
    return round(previous - current, _DROP_PRECISION)


def is_regression(previous: float, current: float, max_diff: float) -> bool:
    """Whether the drop from *previous* exceeds *max_diff*.

    A previous value of 0 means there is no baseline and never regresses.
    """
    if previous == 0:
        return False
    return coverage_drop(previous, current) > max_diff


# ── Status checks ────────────────────────────────────────────────


def generate_status_check(
    current: float,
    coverage_type: str,
    thresholds: Mapping[str, float],
    context_prefix: str = DEFAULT_CONTEXT_PREFIX,
) -> StatusDescriptor:
    """Build the threshold status check for one coverage type."""
    threshold = _threshold_for(coverage_type, thresholds)
    return StatusDescriptor(
        passed=current >= threshold,
        description=(
            f"threshold: {format_percentage(threshold)}% - current: {format_percentage(current)}%"
        ),
        context=f"{context_prefix}-{coverage_type}",
    )


def generate_diff_status_check(
    previous: float,
    current: float,
    coverage_type: str,
    max_diff: float,
    context_prefix: str = DEFAULT_CONTEXT_PREFIX,
) -> StatusDescriptor | None:
    """Build the delta status check, or ``None`` when there is no baseline.

    A regression exactly equal to *max_diff* still passes.
    """
    if previous == 0:
        return None

    prev_text = format_percentage(previous)
    curr_text = format_percentage(current)
    if current == previous:
        description = f"stays the same: {prev_text}% ~ {curr_text}%"
    elif current > previous:
        description = f"went up from {prev_text}% to {curr_text}%"
    else:
        description = f"decreased from {prev_text}% to {curr_text}%"

    return StatusDescriptor(
        passed=not is_regression(previous, current, max_diff),
        description=description,
        context=f"{context_prefix}-{coverage_type}-delta",
    )


# ── PR comment ───────────────────────────────────────────────────


def _change_cell(previous: float, current: float) -> str:
    if current == previous:
        return f"{_ICON_SAME} No change"
    icon = _ICON_UP if current > previous else _ICON_DOWN
    return f"{icon} {format_diff(current - previous)}%"


def _warning_line(
    coverage_type: str, previous: float, current: float, threshold: float, max_diff: float
) -> str | None:
    below = current < threshold
    regressed = is_regression(previous, current, max_diff)
    if not below and not regressed:
        return None

    name = display_name(coverage_type)
    drop = (
        f"decreased by {coverage_drop(previous, current):.2f}% "
        f"(max allowed: {format_percentage(max_diff)}%)"
    )
    if below and regressed:
        return f"{_ICON_WARN} {name} coverage is below the required threshold and {drop}."
    if below:
        return f"{_ICON_WARN} {name} coverage is below the required threshold."
    return f"{_ICON_WARN} {name} coverage {drop}."


def generate_coverage_comment(
    previous: Mapping[str, float],
    current: Mapping[str, float],
    coverage_types: Iterable[str],
    thresholds: Mapping[str, float],
    max_diff: float,
) -> str:
    """Render the Markdown coverage report for a pull request.

    Args:
        previous: Baseline coverage per type; missing types read as 0.
        current: Current coverage per type; missing types read as 0.
        coverage_types: Types to include, in row order.
        thresholds: Threshold per type (80 for unknown types).
        max_diff: Maximum tolerated percentage-point drop.

    Returns:
        The comment body. Identical inputs give identical output.
    """
    rows: list[str] = []
    warnings: list[str] = []

    for coverage_type in coverage_types:
        curr = current.get(coverage_type) or 0
        prev = previous.get(coverage_type) or 0
        threshold = _threshold_for(coverage_type, thresholds)

        passed = curr >= threshold and not is_regression(prev, curr, max_diff)
        rows.append(
            f"| {display_name(coverage_type)} "
            f"| {format_percentage(curr)}% "
            f"| {format_percentage(prev)}% "
            f"| {_change_cell(prev, curr)} "
            f"| {format_percentage(threshold)}% "
            f"| {_ICON_PASS if passed else _ICON_FAIL} |"
        )

        warning = _warning_line(coverage_type, prev, curr, threshold, max_diff)
        if warning:
            warnings.append(warning)

    body = f"{COMMENT_HEADING}\n\n{TABLE_HEADER}\n" + "\n".join(rows)
    if warnings:
        body += "\n\n" + "\n".join(warnings)
    return body
