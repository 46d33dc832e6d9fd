"""Tests for CI context detection."""

from __future__ import annotations

from gcr.utils.ci_context import CIContext, detect_ci_context, parse_int


def test_detect_github_actions_pr_context() -> None:
    """Test GitHub Actions PR context detection."""
    env = {
        "GITHUB_ACTIONS": "true",
        "GITHUB_EVENT_NAME": "pull_request",
        "GITHUB_REF": "refs/pull/123/merge",
        "GITHUB_HEAD_REF": "feature/test",
        "GITHUB_REF_NAME": "123/merge",
        "GITHUB_BASE_REF": "main",
        "GITHUB_SHA": "abc123def456",
        "GITHUB_REPOSITORY": "owner/repo",
    }

    context = detect_ci_context(env)

    assert context.is_ci
    assert context.is_pr
    assert context.pr_number == 123
    assert context.branch == "feature/test"
    assert context.base_branch == "main"
    assert context.commit_sha == "abc123def456"
    assert context.repo_owner == "owner"
    assert context.repo_name == "repo"


def test_detect_github_actions_pull_request_target() -> None:
    env = {
        "GITHUB_ACTIONS": "true",
        "GITHUB_EVENT_NAME": "pull_request_target",
        "GITHUB_REF": "refs/pull/7/merge",
    }

    context = detect_ci_context(env)

    assert context.is_pr
    assert context.pr_number == 7


def test_detect_github_actions_non_pr_context() -> None:
    """Test GitHub Actions non-PR (push) context."""
    env = {
        "GITHUB_ACTIONS": "true",
        "GITHUB_EVENT_NAME": "push",
        "GITHUB_REF": "refs/heads/main",
        "GITHUB_REF_NAME": "main",
        "GITHUB_BASE_REF": "",
        "GITHUB_SHA": "xyz789",
        "GITHUB_REPOSITORY": "owner/repo",
    }

    context = detect_ci_context(env)

    assert context.is_ci
    assert not context.is_pr
    assert context.pr_number is None
    assert context.branch == "main"
    assert context.base_branch is None
    assert context.repo_owner == "owner"
    assert context.repo_name == "repo"


def test_malformed_repository_is_ignored() -> None:
    context = detect_ci_context({"GITHUB_ACTIONS": "true", "GITHUB_REPOSITORY": "just-a-name"})

    assert context.repo_owner is None
    assert context.repo_name is None


def test_generic_ci() -> None:
    assert detect_ci_context({"CI": "true"}) == CIContext(is_ci=True, is_pr=False)


def test_local_environment() -> None:
    context = detect_ci_context({})

    assert not context.is_ci
    assert not context.is_pr
    assert context.branch is None


def test_parse_int() -> None:
    assert parse_int("42") == 42
    assert parse_int("") is None
    assert parse_int(None) is None
    assert parse_int("abc") is None
