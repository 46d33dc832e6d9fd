"""Read coverage percentages from JSON coverage summary files.

The summary format is whatever the coverage tool produced (istanbul's
``coverage-summary.json``, a coverage.py JSON report, ...); a dotted key path
selects the percentage inside it.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from gcr.config import DEFAULT_KEY_PATH, coverage_env_var, resolve_coverage_path

if TYPE_CHECKING:
    from collections.abc import Mapping

    from gcr.config import Settings
    from gcr.models.coverage import CoverageSnapshot

logger = logging.getLogger(__name__)


class CoverageSourceError(Exception):
    """Base class for coverage summary read failures."""


class CoverageFileNotFoundError(CoverageSourceError):
    """Raised when the summary file does not exist."""


class CoverageParseError(CoverageSourceError):
    """Raised when the summary file is not valid JSON."""


class CoverageKeyPathError(CoverageSourceError):
    """Raised when the key path does not resolve to a value."""


def get_nested_value(data: Any, key_path: str) -> Any:
    """Walk *data* along a dotted *key_path*.

    Returns ``None`` as soon as an intermediate value is missing or is not a
    mapping.
    """
    current = data
    for key in key_path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current


def parse_single_file(path: str | Path, key_path: str = DEFAULT_KEY_PATH) -> float:
    """Read one coverage percentage from a summary file.

    Raises:
        CoverageFileNotFoundError: If *path* does not exist.
        CoverageParseError: If the file is not valid JSON or the value is not numeric.
        CoverageKeyPathError: If *key_path* does not resolve.
    """
    summary_path = Path(path)
    if not summary_path.is_file():
        raise CoverageFileNotFoundError(f"Coverage file not found: {summary_path}")

    try:
        data = json.loads(summary_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise CoverageParseError(f"Failed to parse coverage file {summary_path}: {exc}") from exc

    value = get_nested_value(data, key_path)
    if value is None:
        raise CoverageKeyPathError(f"Key path not found in coverage file: {key_path}")

    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise CoverageParseError(
            f"Value at {key_path} in {summary_path} is not a number: {value!r}"
        ) from exc


def parse_from_files(
    paths: Mapping[str, str | Path],
    key_paths: Mapping[str, str] | None = None,
) -> CoverageSnapshot:
    """Read several coverage types at once.

    Unlike :func:`parse_single_file`, a failing type is logged and recorded
    as ``0`` instead of raising.
    """
    key_paths = key_paths or {}
    snapshot: CoverageSnapshot = {}

    for coverage_type, path in paths.items():
        key_path = key_paths.get(coverage_type, DEFAULT_KEY_PATH)
        try:
            snapshot[coverage_type] = parse_single_file(path, key_path)
        except CoverageSourceError as exc:
            logger.warning("Could not read %s coverage from %s: %s", coverage_type, path, exc)
            snapshot[coverage_type] = 0.0

    return snapshot


class CoverageValueSource:
    """Produces the current coverage percentage for a type.

    Precedence: explicit value, explicit file path, the type's configured
    file path, then ``<TYPE>_COVERAGE_SUMMARY_JSON_PATH`` from the environment.
    The environment path is also tried when the configured file cannot be read.
    """

    def __init__(self, settings: Settings, env: Mapping[str, str] | None = None) -> None:
        self._settings = settings
        self._env = env if env is not None else {}

    def key_path_for(self, coverage_type: str) -> str:
        type_config = self._settings.coverage_types.get(coverage_type)
        return type_config.key_path if type_config else DEFAULT_KEY_PATH

    def get_current_value(
        self,
        coverage_type: str,
        explicit_value: float | None = None,
        explicit_file_path: str | Path | None = None,
    ) -> float:
        """Return the current coverage for *coverage_type*.

        Raises:
            CoveragePathNotFoundError: If no file path can be found.
            CoverageSourceError: If the summary file cannot be read.
        """
        if explicit_value is not None:
            return float(explicit_value)

        key_path = self.key_path_for(coverage_type)
        if explicit_file_path:
            return self._read(coverage_type, explicit_file_path, key_path)

        path = resolve_coverage_path(coverage_type, self._settings, self._env)
        try:
            return self._read(coverage_type, path, key_path)
        except CoverageSourceError as exc:
            # A configured path that cannot be read falls back to the environment
            env_var = coverage_env_var(coverage_type)
            env_path = self._env.get(env_var)
            if not env_path or env_path == path:
                raise
            logger.warning("%s; falling back to %s=%s", exc, env_var, env_path)
            return self._read(coverage_type, env_path, key_path)

    def _read(self, coverage_type: str, path: str | Path, key_path: str) -> float:
        logger.debug("Reading %s coverage from %s (key path %s)", coverage_type, path, key_path)
        return parse_single_file(path, key_path)
