"""Data models for gcr."""

from gcr.models.coverage import (
    CoverageSnapshot,
    HistoryDocument,
    PullRequestRef,
    RunResult,
    StatusDescriptor,
)

__all__ = [
    "CoverageSnapshot",
    "HistoryDocument",
    "PullRequestRef",
    "RunResult",
    "StatusDescriptor",
]
