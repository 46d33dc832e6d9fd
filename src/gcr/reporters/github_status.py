"""Post coverage threshold and delta checks as GitHub commit statuses."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from gcr.reporters.comparison import (
    DEFAULT_CONTEXT_PREFIX,
    generate_diff_status_check,
    generate_status_check,
)
from gcr.utils.github import GitHubAPI, GitHubAPIError, RepoRef

if TYPE_CHECKING:
    from collections.abc import Mapping

    from gcr.models.coverage import StatusDescriptor

logger = logging.getLogger(__name__)


class GitHubStatusReporter:
    """Posts one threshold check and, when a baseline exists, one delta check per type.

    Status checks attach to a commit, not a pull request, so they are posted
    even when no PR exists. Any API failure propagates to the caller.
    """

    def __init__(
        self,
        api: GitHubAPI,
        repo: RepoRef,
        commit_sha: str,
        context_prefix: str = DEFAULT_CONTEXT_PREFIX,
    ) -> None:
        self._api = api
        self._repo = repo
        self._commit_sha = commit_sha
        self._context_prefix = context_prefix

    def set_status_checks(
        self,
        current: float,
        previous: float,
        coverage_type: str,
        thresholds: Mapping[str, float],
        max_diff: float,
    ) -> list[StatusDescriptor]:
        """Compute and post the status checks for one coverage type.

        Returns:
            The descriptors that were posted.

        Raises:
            GitHubAPIError: If the commit SHA is unknown or the API call fails.
        """
        if not self._commit_sha:
            raise GitHubAPIError(
                "Commit SHA is required to set status checks. "
                "Set GITHUB_SHA or COMMIT_SHA environment variable."
            )

        descriptors = [
            generate_status_check(current, coverage_type, thresholds, self._context_prefix)
        ]
        delta = generate_diff_status_check(
            previous, current, coverage_type, max_diff, self._context_prefix
        )
        if delta is not None:
            descriptors.append(delta)

        for descriptor in descriptors:
            self._api.set_status(
                self._repo,
                self._commit_sha,
                state=descriptor.state,
                description=descriptor.description,
                context=descriptor.context,
            )
            logger.info(
                "Status %s on %s: %s (%s)",
                descriptor.context,
                self._commit_sha[:7],
                descriptor.state,
                descriptor.description,
            )

        return descriptors
