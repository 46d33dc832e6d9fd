"""GitHub comment reporter for posting coverage reports to PRs.

Comment failures never abort a run: the reporter logs the error and
returns ``None``. Pull request lookups degrade the same way.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from gcr.models.coverage import PullRequestRef
from gcr.reporters.comparison import generate_coverage_comment
from gcr.utils.github import GitHubAPI, GitHubAPIError, RepoRef, compute_comment_marker

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from gcr.config import CommentSettings

logger = logging.getLogger(__name__)


class GitHubCommentReporter:
    """Posts the coverage table as a PR comment and looks up pull requests."""

    def __init__(
        self,
        api: GitHubAPI,
        repo: RepoRef,
        comment_settings: CommentSettings | None = None,
    ) -> None:
        """Initialize the GitHub comment reporter.

        Args:
            api: Authenticated GitHub client.
            repo: Repository the PR belongs to.
            comment_settings: Header, footer and update behaviour.
        """
        self._api = api
        self._repo = repo
        self._header = comment_settings.header if comment_settings else ""
        self._footer = comment_settings.footer if comment_settings else ""
        self._update_existing = comment_settings.update_existing if comment_settings else False
        self._marker = compute_comment_marker(repo.owner, repo.repo)

    def render(
        self,
        previous: Mapping[str, float],
        current: Mapping[str, float],
        coverage_types: Iterable[str],
        thresholds: Mapping[str, float],
        max_diff: float,
    ) -> str:
        """Build the full comment body, header and footer included."""
        sections = [
            self._header,
            generate_coverage_comment(previous, current, coverage_types, thresholds, max_diff),
            self._footer,
        ]
        body = "\n\n".join(section for section in sections if section)
        if self._update_existing:
            body = f"{self._marker}\n{body}"
        return body

    def post_coverage_comment(
        self,
        pr_number: int,
        previous: Mapping[str, float],
        current: Mapping[str, float],
        coverage_types: Iterable[str],
        thresholds: Mapping[str, float],
        max_diff: float,
    ) -> dict[str, Any] | None:
        """Post (or update) the coverage comment on a pull request.

        Returns:
            The GitHub API response, or ``None`` if posting failed.
        """
        body = self.render(previous, current, coverage_types, thresholds, max_diff)
        logger.info("Posting coverage comment to %s PR #%d", self._repo.slug, pr_number)

        try:
            if self._update_existing:
                result = self._api.upsert_comment(self._repo, pr_number, body, self._marker)
            else:
                result = self._api.create_comment(self._repo, pr_number, body)
        except GitHubAPIError as exc:
            logger.error("Failed to post coverage comment: %s", exc)
            return None

        logger.info("Successfully posted comment: %s", result.get("html_url"))
        return result

    def fetch_pull_request(
        self, head_branch: str, pr_number: int | None = None
    ) -> PullRequestRef | None:
        """Find the pull request to report to.

        A known *pr_number* is fetched directly; otherwise the first open PR
        whose head is *head_branch* is used.

        Returns:
            The pull request, or ``None`` when none is found or the lookup fails.
        """
        try:
            if pr_number is not None:
                payload = self._api.get_pull_request(self._repo, pr_number)
            elif head_branch:
                payload = self._api.fetch_open_pull_request(self._repo, head_branch)
            else:
                logger.warning("No current branch known; cannot look up a pull request")
                return None
        except GitHubAPIError as exc:
            logger.error("Failed to fetch pull request: %s", exc)
            return None

        if not payload:
            return None

        pr = PullRequestRef.from_payload(payload)
        logger.debug("Found PR #%d (base: %s)", pr.number, pr.base_ref)
        return pr
