"""Thin GitHub REST client for statuses, comments and pull requests."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Any

import requests

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"

_REQUEST_TIMEOUT = 30
_COMMENTS_PER_PAGE = 100

# GitHub rejects status descriptions longer than this
_MAX_STATUS_DESCRIPTION = 140


class GitHubAPIError(Exception):
    """Exception raised when GitHub API operations fail."""


@dataclass(frozen=True)
class RepoRef:
    """Repository coordinates."""

    owner: str
    """Repository owner (org or user)."""

    repo: str
    """Repository name."""

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}"


def compute_comment_marker(owner: str, repo: str) -> str:
    """Return the hidden HTML marker identifying gcr comments in a repository."""
    digest = hashlib.sha1(f"{owner}/{repo}".encode(), usedforsecurity=False).hexdigest()[:12]
    return f"<!-- github-coverage-reporter:{digest} -->"


class GitHubAPI:
    """Client for interacting with the GitHub API.

    Handles authentication, API requests, commit statuses and PR comments.
    """

    def __init__(self, token: str, base_url: str = GITHUB_API_BASE) -> None:
        """Initialize the GitHub API client.

        Args:
            token: GitHub access token.
            base_url: API root, overridable for GitHub Enterprise.

        Raises:
            GitHubAPIError: If no token is given.
        """
        if not token:
            raise GitHubAPIError(
                "GitHub token required. Set GITHUB_ACCESS_TOKEN environment variable "
                "or pass a token explicitly."
            )

        self._base_url = base_url.rstrip("/")
        self._session_headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    # ── Commit statuses ──────────────────────────────────────────

    def set_status(
        self,
        repo: RepoRef,
        sha: str,
        *,
        state: str,
        description: str,
        context: str,
    ) -> dict[str, Any]:
        """Create a commit status.

        Args:
            repo: Repository coordinates.
            sha: Commit the status is attached to.
            state: ``success``, ``failure``, ``pending`` or ``error``.
            description: Short summary shown next to the check.
            context: Check identifier.

        Raises:
            GitHubAPIError: If the API request fails.
        """
        url = f"{self._base_url}/repos/{repo.slug}/statuses/{sha}"
        payload = {
            "state": state,
            "description": description[:_MAX_STATUS_DESCRIPTION],
            "context": context,
        }
        result: dict[str, Any] = self._post(url, payload)
        return result

    # ── Comments ─────────────────────────────────────────────────

    def create_comment(self, repo: RepoRef, pr_number: int, body: str) -> dict[str, Any]:
        """Create a new comment on a pull request.

        Raises:
            GitHubAPIError: If the API request fails.
        """
        url = f"{self._base_url}/repos/{repo.slug}/issues/{pr_number}/comments"
        result: dict[str, Any] = self._post(url, {"body": body})
        return result

    def update_comment(self, repo: RepoRef, comment_id: int, body: str) -> dict[str, Any]:
        """Update an existing comment.

        Raises:
            GitHubAPIError: If the API request fails.
        """
        url = f"{self._base_url}/repos/{repo.slug}/issues/comments/{comment_id}"
        result: dict[str, Any] = self._patch(url, {"body": body})
        return result

    def find_comment_by_marker(
        self, repo: RepoRef, pr_number: int, marker: str
    ) -> dict[str, Any] | None:
        """Find the first comment on a PR whose body contains *marker*."""
        page = 1
        while True:
            url = f"{self._base_url}/repos/{repo.slug}/issues/{pr_number}/comments"
            comments = self._get(url, params={"per_page": _COMMENTS_PER_PAGE, "page": page})
            for comment in comments:
                if marker in (comment.get("body") or ""):
                    return comment  # type: ignore[no-any-return]
            if len(comments) < _COMMENTS_PER_PAGE:
                return None
            page += 1

    def upsert_comment(
        self, repo: RepoRef, pr_number: int, body: str, marker: str
    ) -> dict[str, Any]:
        """Create or update a comment identified by *marker*.

        Args:
            repo: Repository coordinates.
            pr_number: Pull request number.
            body: Comment body. Should include the marker.
            marker: Unique marker identifying the comment.

        Raises:
            GitHubAPIError: If any API request fails.
        """
        if marker not in body:
            logger.warning("Marker '%s' not found in comment body. Adding it.", marker)
            body = f"{marker}\n{body}"

        existing = self.find_comment_by_marker(repo, pr_number, marker)
        if existing:
            logger.info("Updating existing comment %s on PR #%d", existing["id"], pr_number)
            return self.update_comment(repo, int(existing["id"]), body)

        logger.info("Creating new comment on PR #%d", pr_number)
        return self.create_comment(repo, pr_number, body)

    # ── Pull requests ────────────────────────────────────────────

    def fetch_open_pull_request(self, repo: RepoRef, head_branch: str) -> dict[str, Any] | None:
        """Return the first open PR whose head is *head_branch*, if any.

        Raises:
            GitHubAPIError: If the API request fails.
        """
        url = f"{self._base_url}/repos/{repo.slug}/pulls"
        pulls = self._get(url, params={"head": f"{repo.owner}:{head_branch}", "state": "open"})
        if not pulls:
            return None
        return pulls[0]  # type: ignore[no-any-return]

    def get_pull_request(self, repo: RepoRef, pr_number: int) -> dict[str, Any]:
        """Fetch a single pull request by number.

        Raises:
            GitHubAPIError: If the API request fails.
        """
        url = f"{self._base_url}/repos/{repo.slug}/pulls/{pr_number}"
        result: dict[str, Any] = self._get(url)
        return result

    # ── Transport ────────────────────────────────────────────────

    def _get(self, url: str, params: dict[str, Any] | None = None) -> Any:
        try:
            response = requests.get(
                url, params=params, headers=self._session_headers, timeout=_REQUEST_TIMEOUT
            )
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as exc:
            raise GitHubAPIError(f"GET request failed: {exc}") from exc

    def _post(self, url: str, data: dict[str, Any]) -> Any:
        try:
            response = requests.post(
                url, json=data, headers=self._session_headers, timeout=_REQUEST_TIMEOUT
            )
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as exc:
            raise GitHubAPIError(f"POST request failed: {exc}") from exc

    def _patch(self, url: str, data: dict[str, Any]) -> Any:
        try:
            response = requests.patch(
                url, json=data, headers=self._session_headers, timeout=_REQUEST_TIMEOUT
            )
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as exc:
            raise GitHubAPIError(f"PATCH request failed: {exc}") from exc
