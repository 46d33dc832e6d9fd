"""Tests for CoverageOrchestrator run flow."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import pytest

from gcr.adapters.coverage_summary import CoverageFileNotFoundError, CoverageValueSource
from gcr.config import ConfigError, ReporterOptions, resolve_settings
from gcr.orchestrator import CoverageOrchestrator, RunOptions
from gcr.storage.s3_history import S3HistoryStore
from gcr.utils.github import GitHubAPI, GitHubAPIError, RepoRef

_ENV = {
    "GITHUB_OWNER": "octocat",
    "GITHUB_REPO": "hello-world",
    "GITHUB_ACCESS_TOKEN": "test-value",
    "GITHUB_CURR_BRANCH": "feature/x",
    "GITHUB_TARGET_BRANCH": "main",
    "GITHUB_SHA": "abc123",
    "AWS_S3_BUCKET": "coverage-bucket",
}

_CONFIG: dict[str, Any] = {
    "coverage": {
        "types": [
            {"name": "backend", "threshold": 80},
            {"name": "frontend", "threshold": 70},
        ]
    }
}

_REPO = RepoRef(owner="octocat", repo="hello-world")


def _value_source(values: dict[str, float]) -> MagicMock:
    source = MagicMock(spec=CoverageValueSource)

    def _get(coverage_type: str, explicit_value: Any = None, explicit_file_path: Any = None) -> Any:
        if explicit_value is not None:
            return float(explicit_value)
        return values[coverage_type]

    source.get_current_value.side_effect = _get
    return source


@pytest.fixture()
def github() -> MagicMock:
    api = MagicMock(spec=GitHubAPI)
    api.fetch_open_pull_request.return_value = None
    api.create_comment.return_value = {"id": 1, "html_url": "https://example/1"}
    return api


@pytest.fixture()
def history() -> MagicMock:
    store = MagicMock(spec=S3HistoryStore)
    store.get.return_value = {}
    return store


def _orchestrator(
    github: MagicMock,
    history: MagicMock,
    values: dict[str, float],
    *,
    env: dict[str, str] | None = None,
    config: dict[str, Any] | None = None,
    options: ReporterOptions | None = None,
) -> CoverageOrchestrator:
    env = _ENV if env is None else env
    settings = resolve_settings(options, _CONFIG if config is None else config, env)
    return CoverageOrchestrator(
        settings,
        github=github,
        history=history,
        value_source=_value_source(values),
        env=env,
    )


# ---------------------------------------------------------------------------
# Multi-type runs
# ---------------------------------------------------------------------------


class TestMultiTypeRun:
    def test_no_pull_request(self, github: MagicMock, history: MagicMock) -> None:
        orchestrator = _orchestrator(github, history, {"backend": 85.0, "frontend": 90.0})

        result = orchestrator.run(options=RunOptions(coverage_types=["backend", "frontend"]))

        assert result.success
        assert result.pr is None
        assert result.current_coverage == {"backend": 85.0, "frontend": 90.0}
        assert result.previous_coverage == {"backend": 0.0, "frontend": 0.0}
        github.create_comment.assert_not_called()
        assert github.set_status.call_count == 2
        history.get.assert_not_called()

    def test_baseline_from_base_branch(self, github: MagicMock, history: MagicMock) -> None:
        github.fetch_open_pull_request.return_value = {
            "number": 42,
            "base": {"ref": "develop"},
            "head": {"ref": "feature/x"},
        }
        history.get.return_value = {
            "develop": {"backend": 80.0, "frontend": 95.0},
            "feature/x": {"backend": 10.0},
        }
        orchestrator = _orchestrator(github, history, {"backend": 85.0, "frontend": 90.0})

        result = orchestrator.run(options=RunOptions(coverage_types=["backend", "frontend"]))

        assert result.pr == 42
        assert result.previous_coverage == {"backend": 80.0, "frontend": 95.0}
        history.get.assert_called_once_with("coverage.json")
        github.fetch_open_pull_request.assert_called_once_with(_REPO, "feature/x")

        # threshold and delta check per type
        assert github.set_status.call_count == 4
        contexts = [call.kwargs["context"] for call in github.set_status.call_args_list]
        assert contexts == [
            "code-coverage-backend",
            "code-coverage-backend-delta",
            "code-coverage-frontend",
            "code-coverage-frontend-delta",
        ]

        github.create_comment.assert_called_once()
        repo, number, body = github.create_comment.call_args.args
        assert (repo, number) == (_REPO, 42)
        assert "| Backend | 85% | 80% |" in body
        assert "| Frontend | 90% | 95% |" in body

    def test_history_written_once(self, github: MagicMock, history: MagicMock) -> None:
        orchestrator = _orchestrator(github, history, {"backend": 85.0, "frontend": 90.0})

        orchestrator.run(options=RunOptions(coverage_types=["backend", "frontend"]))

        history.record.assert_called_once_with(
            "coverage.json", "feature/x", {"backend": 85.0, "frontend": 90.0}
        )

    def test_pr_number_from_environment(self, github: MagicMock, history: MagicMock) -> None:
        github.get_pull_request.return_value = {"number": 17, "base": {"ref": "main"}}
        env = {**_ENV, "GITHUB_PR_NUMBER": "17"}
        orchestrator = _orchestrator(github, history, {"backend": 85.0}, env=env)

        result = orchestrator.run(options=RunOptions(coverage_type="backend"))

        assert result.pr == 17
        github.get_pull_request.assert_called_once_with(_REPO, 17)
        github.fetch_open_pull_request.assert_not_called()


# ---------------------------------------------------------------------------
# Single-type runs
# ---------------------------------------------------------------------------


class TestSingleTypeRun:
    def test_explicit_value(self, github: MagicMock, history: MagicMock) -> None:
        orchestrator = _orchestrator(github, history, {})

        result = orchestrator.run(91.5, RunOptions(coverage_type="backend"))

        assert result.coverage_types == ["backend"]
        assert result.current_coverage == {"backend": 91.5}
        assert result.coverage_type == "backend"

    def test_only_configured_type_is_default(self, github: MagicMock, history: MagicMock) -> None:
        config = {"coverage": {"types": [{"name": "lambda"}]}}
        orchestrator = _orchestrator(github, history, {"lambda": 60.0}, config=config)

        result = orchestrator.run()

        assert result.coverage_types == ["lambda"]

    def test_no_type_raises(
        self, github: MagicMock, history: MagicMock, caplog: pytest.LogCaptureFixture
    ) -> None:
        orchestrator = _orchestrator(github, history, {})

        with pytest.raises(ConfigError, match="No coverage type specified"):
            orchestrator.run()
        assert "Coverage report failed" in caplog.text

    def test_comment_suppressed_for_run(self, github: MagicMock, history: MagicMock) -> None:
        github.fetch_open_pull_request.return_value = {"number": 3, "base": {"ref": "main"}}
        orchestrator = _orchestrator(github, history, {"backend": 85.0})

        orchestrator.run(options=RunOptions(coverage_type="backend", add_comment=False))

        github.create_comment.assert_not_called()


# ---------------------------------------------------------------------------
# Feature switches and failures
# ---------------------------------------------------------------------------


class TestFeaturesAndFailures:
    def test_all_outputs_disabled(self, github: MagicMock, history: MagicMock) -> None:
        options = ReporterOptions(add_comments=False, set_status_checks=False, store_in_s3=False)
        orchestrator = _orchestrator(github, history, {"backend": 85.0}, options=options)

        result = orchestrator.run(options=RunOptions(coverage_type="backend"))

        assert result.success
        github.fetch_open_pull_request.assert_not_called()
        github.set_status.assert_not_called()
        history.record.assert_not_called()

    def test_missing_current_branch_skips_history(
        self, github: MagicMock, history: MagicMock, caplog: pytest.LogCaptureFixture
    ) -> None:
        env = {k: v for k, v in _ENV.items() if k != "GITHUB_CURR_BRANCH"}
        orchestrator = _orchestrator(github, history, {"backend": 85.0}, env=env)

        orchestrator.run(options=RunOptions(coverage_type="backend"))

        history.record.assert_not_called()
        assert "skipping coverage history update" in caplog.text

    def test_status_failure_aborts_run(self, github: MagicMock, history: MagicMock) -> None:
        github.set_status.side_effect = GitHubAPIError("POST request failed: 403")
        orchestrator = _orchestrator(github, history, {"backend": 85.0})

        with pytest.raises(GitHubAPIError):
            orchestrator.run(options=RunOptions(coverage_type="backend"))
        history.record.assert_not_called()

    def test_value_source_failure_propagates(self, github: MagicMock, history: MagicMock) -> None:
        orchestrator = _orchestrator(github, history, {})
        orchestrator._value_source.get_current_value.side_effect = CoverageFileNotFoundError(
            "Coverage file not found: missing.json"
        )

        with pytest.raises(CoverageFileNotFoundError):
            orchestrator.run(options=RunOptions(coverage_type="backend"))

    def test_missing_repository_identity(self, history: MagicMock) -> None:
        env = {k: v for k, v in _ENV.items() if k not in ("GITHUB_OWNER", "GITHUB_REPO")}
        settings = resolve_settings(None, _CONFIG, env)
        orchestrator = CoverageOrchestrator(
            settings, history=history, value_source=_value_source({"backend": 85.0}), env=env
        )

        with pytest.raises(ConfigError, match="GitHub owner and repo are required"):
            orchestrator.run(options=RunOptions(coverage_type="backend"))
