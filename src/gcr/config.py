"""Configuration resolution from ``.gcr.json``, explicit options and the environment.

Three sources are merged into one :class:`Settings` record, highest priority
first: explicit :class:`ReporterOptions`, the ``.gcr.json`` document, and an
environment snapshot. Hard-coded defaults fill whatever is left. A source only
overrides a lower one when its value is neither ``None`` nor an empty string.

The environment is always passed in explicitly; nothing below the CLI reads
``os.environ``.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

from gcr.utils.ci_context import detect_ci_context, parse_int

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".gcr.json"
DEFAULT_KEY_PATH = "total.statements.pct"
DEFAULT_THRESHOLD = 80.0
DEFAULT_FILE_NAME = "coverage.json"
DEFAULT_FOLDER_NAME = "github-coverage-reporter"
DEFAULT_STATUS_CONTEXT = "code-coverage"

# Maximum tolerated percentage-point drop when nothing is configured.
# An older code path fell back to 1 instead; see DESIGN.md.
DEFAULT_MAX_DIFF = 0.0

_ENV_VAR_RE = re.compile(r"\$\{(\w+)\}")
_THRESHOLD_ENV_RE = re.compile(r"^(\w+)_COVERAGE_THRESHOLD$")

_MAX_PERCENTAGE = 100.0


class ConfigError(Exception):
    """Raised when configuration cannot be loaded or a lookup fails."""


class ConfigParseError(ConfigError):
    """Raised when a configuration file exists but is not a valid JSON object."""


class CoverageTypeNotFoundError(ConfigError):
    """Raised when a coverage type is not declared in ``coverage.types``."""


class CoveragePathNotFoundError(ConfigError):
    """Raised when no summary file path can be found for a coverage type."""


def coverage_env_var(coverage_type: str) -> str:
    """Return the environment variable holding the summary path for a type."""
    return f"{coverage_type.upper()}_COVERAGE_SUMMARY_JSON_PATH"


# ── Settings records ─────────────────────────────────────────────


@dataclass(frozen=True)
class CoverageTypeConfig:
    """A named coverage domain and where to read its percentage."""

    name: str
    """Coverage type name (e.g. ``backend``)."""

    file_path: str = ""
    """Path to the JSON coverage summary."""

    key_path: str = DEFAULT_KEY_PATH
    """Dotted path to the percentage inside the summary."""

    threshold: float = DEFAULT_THRESHOLD
    """Minimum acceptable percentage (0-100)."""


@dataclass(frozen=True)
class FeatureFlags:
    """Which outputs a run produces."""

    add_comments: bool = True
    """Post a coverage comment on the pull request."""

    set_status_checks: bool = True
    """Post commit status checks."""

    store_in_s3: bool = True
    """Persist the current coverage to the S3 history document."""


@dataclass(frozen=True)
class GitHubSettings:
    """GitHub repository identity and credentials."""

    owner: str = ""
    repo: str = ""
    token: str = ""
    current_branch: str = ""
    target_branch: str = ""
    commit_sha: str = ""
    pr_number: int | None = None


@dataclass(frozen=True)
class S3Settings:
    """Location of the coverage history document."""

    bucket_name: str = ""
    folder_name: str = DEFAULT_FOLDER_NAME
    file_name: str = DEFAULT_FILE_NAME
    region: str = ""


@dataclass(frozen=True)
class StatusCheckSettings:
    """Commit status check configuration."""

    enabled: bool = True
    """Whether status checks are posted at all."""

    context: str = DEFAULT_STATUS_CONTEXT
    """Prefix for status contexts (``<context>-<type>``)."""


@dataclass(frozen=True)
class CommentSettings:
    """Pull request comment configuration."""

    enabled: bool = True
    """Whether comments are posted at all."""

    header: str = ""
    """Markdown placed above the coverage table."""

    footer: str = ""
    """Markdown placed below the coverage table."""

    update_existing: bool = False
    """Edit the previous gcr comment instead of adding a new one."""


@dataclass
class ReporterOptions:
    """Explicitly passed options; ``None`` means "not given"."""

    add_comments: bool | None = None
    set_status_checks: bool | None = None
    store_in_s3: bool | None = None
    max_diff: float | None = None
    thresholds: dict[str, float] = field(default_factory=dict)
    github: dict[str, Any] = field(default_factory=dict)
    """Overrides keyed by :class:`GitHubSettings` field names."""

    s3: dict[str, Any] = field(default_factory=dict)
    """Overrides keyed by :class:`S3Settings` field names."""


@dataclass(frozen=True)
class Settings:
    """The effective configuration for one run."""

    coverage_types: dict[str, CoverageTypeConfig] = field(default_factory=dict)
    max_diff: float = DEFAULT_MAX_DIFF
    features: FeatureFlags = field(default_factory=FeatureFlags)
    github: GitHubSettings = field(default_factory=GitHubSettings)
    s3: S3Settings = field(default_factory=S3Settings)
    status_check: StatusCheckSettings = field(default_factory=StatusCheckSettings)
    comment: CommentSettings = field(default_factory=CommentSettings)
    extra_thresholds: dict[str, float] = field(default_factory=dict)
    """Thresholds for types not declared in the config file."""

    raw: dict[str, Any] | None = None
    """Parsed ``.gcr.json`` document, ``None`` when no file was loaded."""

    @property
    def thresholds(self) -> dict[str, float]:
        """Threshold per coverage type."""
        result = dict(self.extra_thresholds)
        result.update({name: cfg.threshold for name, cfg in self.coverage_types.items()})
        return result

    @property
    def type_names(self) -> list[str]:
        """Configured coverage type names in declaration order."""
        return list(self.coverage_types)


# ── Loading ──────────────────────────────────────────────────────


def load_config_file(path: str | Path | None = None, cwd: str | Path | None = None) -> dict | None:
    """Load ``.gcr.json`` from *path* or from *cwd*.

    A missing file is not an error: a warning is logged and ``None`` is
    returned so the caller can fall back to environment variables.

    Raises:
        ConfigParseError: If the file exists but is not a JSON object.
    """
    config_path = Path(path) if path else Path(cwd or Path.cwd()) / CONFIG_FILENAME

    if not config_path.is_file():
        logger.warning("Configuration file not found: %s", config_path)
        return None

    try:
        parsed = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigParseError(f"Failed to load configuration: {exc}") from exc

    if not isinstance(parsed, dict):
        raise ConfigParseError(
            f"Failed to load configuration: {config_path} must contain a JSON object"
        )

    logger.debug("Loaded configuration from %s", config_path)
    return parsed


def _resolve_env_vars(value: str, env: Mapping[str, str]) -> str:
    """Replace ``${VAR_NAME}`` placeholders with environment variable values."""

    def _replace(match: re.Match[str]) -> str:
        var = match.group(1)
        resolved = env.get(var)
        if resolved is None:
            logger.warning("Environment variable %s is not set (referenced in config)", var)
            return ""
        return resolved

    return _ENV_VAR_RE.sub(_replace, value)


def _resolve_value(value: Any, env: Mapping[str, str]) -> Any:
    if isinstance(value, str):
        return _resolve_env_vars(value, env)
    if isinstance(value, dict):
        return _resolve_dict(value, env)
    if isinstance(value, list):
        return [_resolve_value(item, env) for item in value]
    return value


def _resolve_dict(data: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    """Recursively resolve environment variables in a dictionary."""
    return {key: _resolve_value(value, env) for key, value in data.items()}


# ── Merging ──────────────────────────────────────────────────────


def _is_set(value: Any) -> bool:
    return value is not None and value != ""


def merge_with_priority(*sources: Mapping[str, Any]) -> dict[str, Any]:
    """Merge mappings, highest priority first.

    Each key takes its value from the first source where it is neither
    ``None`` nor ``""``. Keys that are unset everywhere are omitted.
    """
    result: dict[str, Any] = {}
    for source in reversed(sources):
        for key, value in source.items():
            if _is_set(value):
                result[key] = value
    return result


def _first_set(*values: Any) -> Any:
    for value in values:
        if _is_set(value):
            return value
    return None


# ── Lookups on the raw document ──────────────────────────────────


def _coverage_type_entries(raw: dict[str, Any] | None) -> list[dict[str, Any]]:
    coverage = raw.get("coverage") if isinstance(raw, dict) else None
    types = coverage.get("types") if isinstance(coverage, dict) else None
    if not isinstance(types, list):
        raise ConfigError("Invalid configuration format: coverage types not found")
    return [entry for entry in types if isinstance(entry, dict)]


def get_coverage_type(coverage_type: str, raw: dict[str, Any] | None) -> dict[str, Any]:
    """Return the ``coverage.types`` entry named exactly *coverage_type*.

    Raises:
        ConfigError: If the document has no ``coverage.types`` array.
        CoverageTypeNotFoundError: If no entry matches.
    """
    for entry in _coverage_type_entries(raw):
        if entry.get("name") == coverage_type:
            return entry
    raise CoverageTypeNotFoundError(f"Coverage type not found in configuration: {coverage_type}")


def get_coverage_path(coverage_type: str, raw: dict[str, Any] | None) -> str | None:
    """File path declared for a coverage type."""
    return get_coverage_type(coverage_type, raw).get("filePath")


def get_coverage_key_path(coverage_type: str, raw: dict[str, Any] | None) -> str | None:
    """Key path declared for a coverage type."""
    return get_coverage_type(coverage_type, raw).get("keyPath")


def get_coverage_threshold(coverage_type: str, raw: dict[str, Any] | None) -> float | None:
    """Threshold declared for a coverage type."""
    return get_coverage_type(coverage_type, raw).get("threshold")


def _as_float(value: Any, default: float, name: str) -> float:
    """Convert a configured number, falling back to *default* with a warning."""
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric %s=%r; using %s", name, value, default)
        return default


def _max_diff_entry(raw: dict[str, Any] | None) -> tuple[str, Any] | None:
    """Locate the configured maxDiff as ``(key, value)``, if any."""
    if not isinstance(raw, dict):
        return None

    coverage = raw.get("coverage")
    if isinstance(coverage, dict) and coverage.get("maxDiff") is not None:
        return "coverage.maxDiff", coverage["maxDiff"]

    # Older documents keep it under config.maxCoverageDiff
    legacy = raw.get("config")
    if isinstance(legacy, dict) and legacy.get("maxCoverageDiff") is not None:
        return "config.maxCoverageDiff", legacy["maxCoverageDiff"]

    return None


def get_max_diff(raw: dict[str, Any] | None) -> float:
    """Maximum tolerated regression, :data:`DEFAULT_MAX_DIFF` when unset or invalid."""
    entry = _max_diff_entry(raw)
    if entry is None:
        return DEFAULT_MAX_DIFF
    key, value = entry
    return _as_float(value, DEFAULT_MAX_DIFF, key)


def get_features(raw: dict[str, Any] | None) -> FeatureFlags:
    """Feature flags from ``config.features``; every flag defaults to on."""
    section = raw.get("config") if isinstance(raw, dict) else None
    features = section.get("features") if isinstance(section, dict) else None
    if not isinstance(features, dict):
        return FeatureFlags()

    return FeatureFlags(
        add_comments=features.get("addComments") is not False,
        set_status_checks=features.get("setStatusChecks") is not False,
        store_in_s3=features.get("storeInS3") is not False,
    )


def _section(raw: dict[str, Any] | None, name: str, flat_keys: tuple[str, ...]) -> dict[str, Any]:
    """Read ``config.<name>``, then ``<name>``, then flattened top-level keys."""
    if not isinstance(raw, dict):
        return {}

    nested = raw.get("config")
    if isinstance(nested, dict) and isinstance(nested.get(name), dict):
        result = dict(nested[name])
    elif isinstance(raw.get(name), dict):
        result = dict(raw[name])
    else:
        result = {}

    for key in flat_keys:
        if not _is_set(result.get(key)) and _is_set(raw.get(key)):
            result[key] = raw[key]
    return result


def get_s3_config(raw: dict[str, Any] | None) -> dict[str, Any]:
    """S3 section of the document with file and folder defaults applied."""
    result = _section(raw, "s3", ("fileName", "folderName", "bucketName"))
    if not _is_set(result.get("fileName")):
        result["fileName"] = DEFAULT_FILE_NAME
    if not _is_set(result.get("folderName")):
        result["folderName"] = DEFAULT_FOLDER_NAME
    return result


def get_github_config(raw: dict[str, Any] | None) -> dict[str, Any]:
    """GitHub section of the document."""
    return _section(raw, "github", ("owner", "repo", "defaultTargetBranch"))


# ── Section parsers ──────────────────────────────────────────────


def _parse_coverage_types(raw: dict[str, Any] | None) -> dict[str, CoverageTypeConfig]:
    try:
        entries = _coverage_type_entries(raw)
    except ConfigError:
        return {}

    result: dict[str, CoverageTypeConfig] = {}
    for entry in entries:
        name = str(entry.get("name", "")).strip()
        if not name:
            continue
        threshold = entry.get("threshold")
        result[name] = CoverageTypeConfig(
            name=name,
            file_path=str(entry.get("filePath") or ""),
            key_path=str(entry.get("keyPath") or DEFAULT_KEY_PATH),
            threshold=(
                _as_float(threshold, DEFAULT_THRESHOLD, f"{name}.threshold")
                if _is_set(threshold)
                else DEFAULT_THRESHOLD
            ),
        )
    return result


def _parse_status_check(raw: dict[str, Any] | None) -> StatusCheckSettings:
    section = raw.get("statusCheck") if isinstance(raw, dict) else None
    if not isinstance(section, dict):
        return StatusCheckSettings()

    return StatusCheckSettings(
        enabled=section.get("enabled") is not False,
        context=str(section.get("context") or DEFAULT_STATUS_CONTEXT),
    )


def _parse_comment(raw: dict[str, Any] | None) -> CommentSettings:
    section = raw.get("comment") if isinstance(raw, dict) else None
    if not isinstance(section, dict):
        return CommentSettings()

    return CommentSettings(
        enabled=section.get("enabled") is not False,
        header=str(section.get("header") or ""),
        footer=str(section.get("footer") or ""),
        update_existing=bool(section.get("updateExisting", False)),
    )


def _env_thresholds(env: Mapping[str, str]) -> dict[str, float]:
    """Collect ``<TYPE>_COVERAGE_THRESHOLD`` values keyed by lower-cased type."""
    result: dict[str, float] = {}
    for key, value in env.items():
        match = _THRESHOLD_ENV_RE.match(key)
        if not match or not value.strip():
            continue
        try:
            result[match.group(1).lower()] = float(value)
        except ValueError:
            logger.warning("Ignoring non-numeric %s=%r", key, value)
    return result


def _resolve_github(
    options: ReporterOptions, raw: dict[str, Any] | None, env: Mapping[str, str]
) -> GitHubSettings:
    from_config = get_github_config(raw)
    ci = detect_ci_context(env)

    merged = merge_with_priority(
        options.github,
        {
            "owner": from_config.get("owner"),
            "repo": from_config.get("repo"),
        },
        {
            "owner": _first_set(env.get("GITHUB_OWNER"), env.get("OWNER")),
            "repo": env.get("GITHUB_REPO"),
            "token": env.get("GITHUB_ACCESS_TOKEN"),
            "current_branch": env.get("GITHUB_CURR_BRANCH"),
            "target_branch": env.get("GITHUB_TARGET_BRANCH"),
            "commit_sha": _first_set(env.get("GITHUB_SHA"), env.get("COMMIT_SHA")),
            "pr_number": parse_int(env.get("GITHUB_PR_NUMBER")),
        },
        {
            "owner": ci.repo_owner,
            "repo": ci.repo_name,
            "current_branch": ci.branch,
            "target_branch": ci.base_branch,
            "commit_sha": ci.commit_sha,
            "pr_number": ci.pr_number,
        },
        # defaultTargetBranch is only a fallback for the environment's value
        {"target_branch": from_config.get("defaultTargetBranch")},
    )

    pr_number = merged.get("pr_number")
    return GitHubSettings(
        owner=str(merged.get("owner", "")),
        repo=str(merged.get("repo", "")),
        token=str(merged.get("token", "")),
        current_branch=str(merged.get("current_branch", "")),
        target_branch=str(merged.get("target_branch", "")),
        commit_sha=str(merged.get("commit_sha", "")),
        pr_number=int(pr_number) if pr_number is not None else None,
    )


def _resolve_s3(
    options: ReporterOptions, raw: dict[str, Any] | None, env: Mapping[str, str]
) -> S3Settings:
    from_config = _section(raw, "s3", ("fileName", "folderName", "bucketName"))

    merged = merge_with_priority(
        options.s3,
        {
            "bucket_name": from_config.get("bucketName"),
            "folder_name": from_config.get("folderName"),
            "file_name": from_config.get("fileName"),
            "region": from_config.get("region"),
        },
        {
            "bucket_name": _first_set(env.get("AWS_S3_BUCKET"), env.get("BUCKET_NAME")),
            "folder_name": env.get("FOLDER_NAME"),
            "region": env.get("AWS_REGION"),
        },
        {"folder_name": DEFAULT_FOLDER_NAME, "file_name": DEFAULT_FILE_NAME},
    )

    return S3Settings(
        bucket_name=str(merged.get("bucket_name", "")),
        folder_name=str(merged["folder_name"]),
        file_name=str(merged["file_name"]),
        region=str(merged.get("region", "")),
    )


def resolve_settings(
    options: ReporterOptions | None = None,
    raw_config: dict[str, Any] | None = None,
    env: Mapping[str, str] | None = None,
) -> Settings:
    """Merge explicit options, the config document and the environment.

    Args:
        options: Explicitly passed options (highest priority).
        raw_config: Parsed ``.gcr.json`` document, or ``None``.
        env: Environment snapshot (lowest priority before defaults).

    Returns:
        The effective settings for one run.
    """
    options = options or ReporterOptions()
    env = env if env is not None else {}
    raw = _resolve_dict(raw_config, env) if raw_config else None

    coverage_types = _parse_coverage_types(raw)
    extra_thresholds = _env_thresholds(env)
    for name, threshold in options.thresholds.items():
        if name in coverage_types:
            coverage_types[name] = replace(coverage_types[name], threshold=float(threshold))
        else:
            extra_thresholds[name] = float(threshold)

    s3 = _resolve_s3(options, raw, env)
    status_check = _parse_status_check(raw)
    comment = _parse_comment(raw)
    features = get_features(raw)

    add_comments = _first_set(options.add_comments, features.add_comments and comment.enabled)
    set_status_checks = _first_set(
        options.set_status_checks, features.set_status_checks and status_check.enabled
    )
    store_in_s3 = _first_set(options.store_in_s3, features.store_in_s3)
    if store_in_s3 and not s3.bucket_name:
        logger.debug("No S3 bucket configured; history storage disabled")
        store_in_s3 = False

    max_diff = options.max_diff if options.max_diff is not None else get_max_diff(raw)

    return Settings(
        coverage_types=coverage_types,
        max_diff=float(max_diff),
        features=FeatureFlags(
            add_comments=bool(add_comments),
            set_status_checks=bool(set_status_checks),
            store_in_s3=bool(store_in_s3),
        ),
        github=_resolve_github(options, raw, env),
        s3=s3,
        status_check=status_check,
        comment=comment,
        extra_thresholds=extra_thresholds,
        raw=raw,
    )


def resolve_coverage_path(coverage_type: str, settings: Settings, env: Mapping[str, str]) -> str:
    """Find the summary file for a type: config first, then the environment.

    Raises:
        CoveragePathNotFoundError: If neither source provides a path.
    """
    type_config = settings.coverage_types.get(coverage_type)
    if type_config and type_config.file_path:
        return type_config.file_path

    env_var = coverage_env_var(coverage_type)
    env_path = env.get(env_var)
    if env_path:
        return env_path

    raise CoveragePathNotFoundError(
        f"No coverage path found for type '{coverage_type}'. "
        f"Please set the {env_var} environment variable or provide a file path explicitly."
    )


# ── Validation ───────────────────────────────────────────────────


def validate_config(raw: dict[str, Any]) -> list[str]:
    """Validate a ``.gcr.json`` document and return a list of error messages.

    Returns an empty list if the document is valid.
    """
    errors: list[str] = []

    try:
        entries = _coverage_type_entries(raw)
    except ConfigError as exc:
        return [str(exc)]

    seen: set[str] = set()
    for index, entry in enumerate(entries):
        name = str(entry.get("name", "")).strip()
        if not name:
            errors.append(f"coverage.types[{index}].name is required")
            continue
        if name in seen:
            errors.append(f"coverage.types[{index}].name is duplicated: {name}")
        seen.add(name)

        threshold = entry.get("threshold")
        if threshold is None:
            continue
        try:
            value = float(threshold)
        except (TypeError, ValueError):
            errors.append(f"coverage.types[{index}].threshold must be a number (got: {threshold})")
            continue
        if not 0.0 <= value <= _MAX_PERCENTAGE:
            errors.append(
                f"coverage.types[{index}].threshold must be between 0 and 100 (got: {threshold})"
            )

    entry = _max_diff_entry(raw)
    if entry is not None:
        key, value = entry
        try:
            max_diff = float(value)
        except (TypeError, ValueError):
            errors.append(f"{key} must be a number (got: {value})")
        else:
            if max_diff < 0:
                errors.append(f"{key} must be non-negative (got: {max_diff:g})")

    return errors
