"""Coverage snapshot, status and run result models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

CoverageSnapshot = dict[str, float]
"""Coverage type name mapped to a percentage (0-100)."""

HistoryDocument = dict[str, CoverageSnapshot]
"""Branch name mapped to the coverage snapshot recorded for it."""


@dataclass(frozen=True)
class StatusDescriptor:
    """A pass/fail unit posted against a commit."""

    passed: bool
    """Whether the check passed."""

    description: str
    """Human-readable summary shown next to the check."""

    context: str
    """Check identifier (e.g. ``code-coverage-backend``)."""

    @property
    def state(self) -> str:
        """GitHub commit status state for this descriptor."""
        return "success" if self.passed else "failure"


@dataclass(frozen=True)
class PullRequestRef:
    """The parts of a GitHub pull request payload the reporter needs."""

    number: int
    """Pull request number."""

    base_ref: str | None = None
    """Branch the pull request merges into."""

    head_ref: str | None = None
    """Branch the pull request was opened from."""

    html_url: str = ""
    """Browser URL of the pull request."""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> PullRequestRef:
        """Build a reference from a GitHub ``pulls`` API object."""
        base = payload.get("base") or {}
        head = payload.get("head") or {}
        return cls(
            number=int(payload["number"]),
            base_ref=base.get("ref"),
            head_ref=head.get("ref"),
            html_url=str(payload.get("html_url", "")),
        )


@dataclass
class RunResult:
    """Summary returned by a reporter run."""

    success: bool
    """Whether the run completed."""

    coverage_types: list[str] = field(default_factory=list)
    """Coverage types processed in this run."""

    current_coverage: CoverageSnapshot = field(default_factory=dict)
    """Current coverage per type."""

    previous_coverage: CoverageSnapshot = field(default_factory=dict)
    """Baseline coverage per type (0 when no baseline exists)."""

    pr: int | None = None
    """Pull request number the run reported to, if any."""

    @property
    def coverage_type(self) -> str | None:
        """The coverage type of a single-type run."""
        if len(self.coverage_types) == 1:
            return self.coverage_types[0]
        return None
