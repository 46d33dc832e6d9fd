"""CI and PR context detection from an environment snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

# Expected number of parts when splitting "owner/repo"
_OWNER_REPO_PARTS = 2


@dataclass(frozen=True)
class CIContext:
    """Detected CI/PR execution context."""

    is_ci: bool
    """Running in CI environment."""

    is_pr: bool
    """Running in context of a pull request."""

    pr_number: int | None = None
    """PR number if in PR context."""

    branch: str | None = None
    """Current (head) branch name."""

    base_branch: str | None = None
    """Base/target branch for PR."""

    commit_sha: str | None = None
    """Current commit SHA."""

    repo_owner: str | None = None
    """Repository owner (org or user)."""

    repo_name: str | None = None
    """Repository name."""


def detect_ci_context(env: Mapping[str, str]) -> CIContext:
    """Detect CI and PR context from environment variables.

    Supports GitHub Actions and generic CI detection. The values found here
    are the lowest-priority fallbacks for the reporter's GitHub identity.

    Args:
        env: Read-only environment snapshot.

    Returns:
        CIContext with detected values.
    """
    if env.get("GITHUB_ACTIONS") == "true":
        event_name = env.get("GITHUB_EVENT_NAME", "")
        is_pr = event_name in {"pull_request", "pull_request_target"}

        repo_full = env.get("GITHUB_REPOSITORY", "")
        repo_parts = repo_full.split("/") if repo_full else []
        has_repo = len(repo_parts) == _OWNER_REPO_PARTS

        # GITHUB_HEAD_REF is only set for pull_request events
        branch = env.get("GITHUB_HEAD_REF") or env.get("GITHUB_REF_NAME") or None

        return CIContext(
            is_ci=True,
            is_pr=is_pr,
            pr_number=_parse_pr_number(env.get("GITHUB_REF")) if is_pr else None,
            branch=branch,
            base_branch=(env.get("GITHUB_BASE_REF") or None) if is_pr else None,
            commit_sha=env.get("GITHUB_SHA") or None,
            repo_owner=repo_parts[0] if has_repo else None,
            repo_name=repo_parts[1] if has_repo else None,
        )

    if env.get("CI") == "true":
        return CIContext(is_ci=True, is_pr=False)

    return CIContext(is_ci=False, is_pr=False)


def _parse_pr_number(github_ref: str | None) -> int | None:
    """Parse the PR number from ``refs/pull/<number>/merge``."""
    if not github_ref or not github_ref.startswith("refs/pull/"):
        return None
    return parse_int(github_ref.split("/")[2])


def parse_int(value: str | None) -> int | None:
    """Parse string to int, return None if invalid."""
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None
