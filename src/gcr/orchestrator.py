"""Run orchestration: read coverage, compare with history, report to GitHub."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from gcr.adapters.coverage_summary import CoverageValueSource
from gcr.config import ConfigError
from gcr.models.coverage import RunResult
from gcr.reporters.github_comment import GitHubCommentReporter
from gcr.reporters.github_status import GitHubStatusReporter
from gcr.storage.s3_history import S3HistoryStore
from gcr.utils.github import GitHubAPI, RepoRef

if TYPE_CHECKING:
    from collections.abc import Mapping

    from gcr.config import Settings
    from gcr.models.coverage import CoverageSnapshot, PullRequestRef

logger = logging.getLogger(__name__)


@dataclass
class RunOptions:
    """Per-invocation choices made by the caller."""

    coverage_type: str | None = None
    """Coverage type for a single-type run."""

    coverage_types: list[str] = field(default_factory=list)
    """Coverage types for a multi-type run (more than one selects that mode)."""

    file_path: str | None = None
    """Explicit summary file for a single-type run."""

    add_comment: bool = True
    """Set to ``False`` to suppress the PR comment for this run only."""


class CoverageOrchestrator:
    """Drives one reporting run.

    A run reads the current coverage per type, looks up the previous value
    recorded for the PR's base branch, posts status checks, posts one PR
    comment, and finally records the current values for the current branch.
    Any failure aborts the run and is re-raised after logging.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        github: GitHubAPI | None = None,
        history: S3HistoryStore | None = None,
        value_source: CoverageValueSource | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._settings = settings
        self._env = env if env is not None else {}
        self._github = github
        self._history = history
        self._value_source = value_source or CoverageValueSource(settings, self._env)
        self._repo = RepoRef(owner=settings.github.owner, repo=settings.github.repo)

    # ── Collaborators ────────────────────────────────────────────

    def _github_client(self) -> GitHubAPI:
        if self._github is None:
            if not self._repo.owner or not self._repo.repo:
                raise ConfigError(
                    "GitHub owner and repo are required. Set them in .gcr.json "
                    "or via GITHUB_OWNER and GITHUB_REPO."
                )
            self._github = GitHubAPI(self._settings.github.token)
        return self._github

    def _history_store(self) -> S3HistoryStore | None:
        if self._history is None and self._settings.s3.bucket_name:
            s3 = self._settings.s3
            self._history = S3HistoryStore(s3.bucket_name, s3.folder_name, region=s3.region)
        return self._history

    def _comment_reporter(self) -> GitHubCommentReporter:
        return GitHubCommentReporter(self._github_client(), self._repo, self._settings.comment)

    def _status_reporter(self) -> GitHubStatusReporter:
        return GitHubStatusReporter(
            self._github_client(),
            self._repo,
            self._settings.github.commit_sha,
            context_prefix=self._settings.status_check.context,
        )

    # ── Run ──────────────────────────────────────────────────────

    def run(
        self, explicit_value: float | None = None, options: RunOptions | None = None
    ) -> RunResult:
        """Execute one reporting run.

        Args:
            explicit_value: Coverage percentage to use instead of reading a
                file (single-type runs only).
            options: Coverage type selection and per-run switches.

        Returns:
            Summary of the coverage that was reported.
        """
        options = options or RunOptions()
        try:
            if len(options.coverage_types) > 1:
                return self._run(list(options.coverage_types), options)
            coverage_type = self._single_type(options)
            return self._run([coverage_type], options, explicit_value=explicit_value)
        except Exception:
            logger.exception("Coverage report failed")
            raise

    def _single_type(self, options: RunOptions) -> str:
        if options.coverage_type:
            return options.coverage_type
        if options.coverage_types:
            return options.coverage_types[0]
        configured = self._settings.type_names
        if len(configured) == 1:
            return configured[0]
        raise ConfigError("No coverage type specified. Pass --name=<type> or --all.")

    def _run(
        self,
        coverage_types: list[str],
        options: RunOptions,
        explicit_value: float | None = None,
    ) -> RunResult:
        settings = self._settings
        features = settings.features
        single = len(coverage_types) == 1

        pr = self._find_pull_request()
        baseline = self._baseline(pr)

        current: CoverageSnapshot = {}
        previous: CoverageSnapshot = {}
        for coverage_type in coverage_types:
            current[coverage_type] = self._value_source.get_current_value(
                coverage_type,
                explicit_value=explicit_value if single else None,
                explicit_file_path=options.file_path if single else None,
            )
            previous[coverage_type] = float(baseline.get(coverage_type) or 0)
            logger.info(
                "%s coverage: current %s%%, previous %s%%",
                coverage_type,
                current[coverage_type],
                previous[coverage_type],
            )

            if features.set_status_checks:
                self._status_reporter().set_status_checks(
                    current[coverage_type],
                    previous[coverage_type],
                    coverage_type,
                    settings.thresholds,
                    settings.max_diff,
                )

        if features.add_comments and pr is not None and options.add_comment:
            self._comment_reporter().post_coverage_comment(
                pr.number,
                previous,
                current,
                coverage_types,
                settings.thresholds,
                settings.max_diff,
            )

        if features.store_in_s3:
            self._record_history(current)

        return RunResult(
            success=True,
            coverage_types=coverage_types,
            current_coverage=current,
            previous_coverage=previous,
            pr=pr.number if pr is not None else None,
        )

    def _find_pull_request(self) -> PullRequestRef | None:
        features = self._settings.features
        if not (features.add_comments or features.set_status_checks):
            return None

        github = self._settings.github
        pr = self._comment_reporter().fetch_pull_request(github.current_branch, github.pr_number)
        if pr is None and features.add_comments:
            logger.info("No PR found, skipping comment creation")
        return pr

    def _baseline(self, pr: PullRequestRef | None) -> CoverageSnapshot:
        """Coverage recorded for the PR's base branch; empty without a PR or store."""
        store = self._history_store()
        if pr is None or store is None:
            return {}

        base_branch = pr.base_ref or self._settings.github.target_branch
        if not base_branch:
            logger.warning("PR #%d has no base branch; no baseline coverage", pr.number)
            return {}

        document = store.get(self._settings.s3.file_name)
        logger.debug("Using coverage history of base branch %s", base_branch)
        return dict(document.get(base_branch) or {})

    def _record_history(self, current: CoverageSnapshot) -> None:
        store = self._history_store()
        if store is None:
            return

        branch = self._settings.github.current_branch
        if not branch:
            logger.warning("Current branch is unknown; skipping coverage history update")
            return

        store.record(self._settings.s3.file_name, branch, current)
