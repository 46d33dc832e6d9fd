"""Sentry SDK integration for gcr.

Error reporting is strictly OPT-IN: nothing is sent unless
``GCR_SENTRY_ENABLED=true`` and ``GCR_SENTRY_DSN`` are both set. Events are
scrubbed of tokens, credentials and home directory paths before sending.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

from gcr import __version__
from gcr.utils.ci_context import detect_ci_context

if TYPE_CHECKING:
    from collections.abc import Mapping
    from types import TracebackType

logger = logging.getLogger(__name__)

_init_lock = threading.Lock()
_initialized: dict[str, bool] = {"value": False}

_TRUTHY = frozenset({"1", "true", "yes", "on"})

# GitHub tokens, AWS key ids, and the credentials gcr reads as key=value pairs
_SECRET_PATTERN = re.compile(
    r"\b(?:gh[pousr]_[A-Za-z0-9]{20,}|github_pat_\w{20,}|A[KS]IA[0-9A-Z]{16})\b"
    r"|(?:aws_\w+|github_access_token|token|dsn|authorization)\s*[:=]\s*(?:bearer\s+)?\S+"
    r"|bearer\s+\S+",
    re.IGNORECASE,
)

_PATH_HOME_RE = re.compile(r"/(?:home|Users)/[^/]+")

# Lower-cased names of the secrets gcr reads from the environment and sends
_SECRET_KEYS = frozenset(
    {
        "authorization",
        "aws_access_key_id",
        "aws_secret_access_key",
        "aws_session_token",
        "gcr_sentry_dsn",
        "github_access_token",
        "token",
    }
)


@dataclass(frozen=True)
class SentrySettings:
    """Error telemetry settings."""

    enabled: bool = False
    """Whether error events are sent at all."""

    dsn: str = ""
    """Sentry project DSN."""

    environment: str = ""
    """Environment tag; ``ci`` or ``local`` when empty."""

    traces_sample_rate: float = 0.0
    """Fraction of runs traced."""

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> SentrySettings:
        """Read ``GCR_SENTRY_*`` variables."""
        rate = env.get("GCR_SENTRY_TRACES_SAMPLE_RATE", "")
        try:
            traces_sample_rate = float(rate) if rate else 0.0
        except ValueError:
            logger.warning("Ignoring invalid GCR_SENTRY_TRACES_SAMPLE_RATE=%r", rate)
            traces_sample_rate = 0.0

        return cls(
            enabled=env.get("GCR_SENTRY_ENABLED", "").strip().lower() in _TRUTHY,
            dsn=env.get("GCR_SENTRY_DSN", ""),
            environment=env.get("GCR_SENTRY_ENVIRONMENT", ""),
            traces_sample_rate=traces_sample_rate,
        )


def init_sentry(settings: SentrySettings, env: Mapping[str, str] | None = None) -> None:
    """Initialize Sentry SDK if enabled and configured.

    Idempotent and thread-safe: calls after the first successful
    initialization do nothing.
    """
    with _init_lock:
        if _initialized["value"]:
            return
        if not settings.enabled:
            logger.debug("Sentry disabled (GCR_SENTRY_ENABLED is not set)")
            return
        if not settings.dsn:
            logger.warning("Sentry enabled but no DSN configured")
            return

        ci_ctx = detect_ci_context(env or {})
        environment = settings.environment or ("ci" if ci_ctx.is_ci else "local")

        sentry_sdk.init(
            dsn=settings.dsn,
            release=f"github-coverage-reporter@{__version__}",
            environment=environment,
            traces_sample_rate=settings.traces_sample_rate,
            send_default_pii=False,
            server_name="",
            before_send=_before_send,
            before_send_transaction=_before_send,
            in_app_include=["gcr"],
            integrations=[
                LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
            ],
        )

        _initialized["value"] = True
        logger.info(
            "Sentry initialized (env=%s, tracing=%.2f)",
            environment,
            settings.traces_sample_rate,
        )


def is_sentry_enabled() -> bool:
    """Return whether Sentry has been successfully initialized."""
    return _initialized["value"]


# ---------------------------------------------------------------------------
# Privacy scrubbing
# ---------------------------------------------------------------------------


def _scrub_path(path: str) -> str:
    """Replace user home directory in paths."""
    return _PATH_HOME_RE.sub("/~", path)


def _scrub_string(value: str) -> str:
    """Remove sensitive patterns from a string."""
    return _SECRET_PATTERN.sub("[REDACTED]", value)


def _scrub_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Scrub sensitive keys and values from a dict."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        if key.lower() in _SECRET_KEYS:
            result[key] = "[REDACTED]"
        elif isinstance(value, str):
            result[key] = _scrub_string(value)
        elif isinstance(value, dict):
            result[key] = _scrub_dict(value)
        else:
            result[key] = value
    return result


def _scrub_exception(exception: dict[str, Any]) -> None:
    for value in exception.get("values", []):
        if isinstance(value.get("value"), str):
            value["value"] = _scrub_string(value["value"])
        stacktrace = value.get("stacktrace") or {}
        for frame in stacktrace.get("frames", []):
            # Frame locals hold the GitHub token and AWS credentials
            frame.pop("vars", None)
            for path_key in ("filename", "abs_path"):
                if isinstance(frame.get(path_key), str):
                    frame[path_key] = _scrub_path(frame[path_key])


def _scrub_breadcrumb(crumb: dict[str, Any]) -> None:
    if isinstance(crumb.get("message"), str):
        crumb["message"] = _scrub_string(crumb["message"])
    if isinstance(crumb.get("data"), dict):
        crumb["data"] = _scrub_dict(crumb["data"])


def _scrub_event(event: dict[str, Any]) -> dict[str, Any]:
    """Strip secrets, frame locals, home directories and the hostname from *event*."""
    if isinstance(event.get("exception"), dict):
        _scrub_exception(event["exception"])

    if isinstance(event.get("breadcrumbs"), dict):
        for crumb in event["breadcrumbs"].get("values", []):
            _scrub_breadcrumb(crumb)

    for section in ("tags", "extra"):
        if isinstance(event.get(section), dict):
            event[section] = _scrub_dict(event[section])

    event.pop("server_name", None)
    return event


def _before_send(event: dict[str, Any], _hint: dict[str, Any]) -> dict[str, Any] | None:
    """Scrub sensitive data from events before sending."""
    return _scrub_event(event)


# ---------------------------------------------------------------------------
# Tracing helpers
# ---------------------------------------------------------------------------


class _NoOpSpan:
    """Context manager that does nothing when Sentry is disabled."""

    def __enter__(self) -> _NoOpSpan:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        pass

    def set_data(self, key: str, value: Any) -> None:
        """No-op data setter."""


def start_span(op: str, name: str) -> Any:
    """Start a new Sentry span, or a no-op context manager when disabled."""
    if not _initialized["value"]:
        return _NoOpSpan()
    return sentry_sdk.start_span(op=op, name=name)
