"""Telemetry integrations for gcr."""

from gcr.telemetry.sentry_integration import (
    SentrySettings,
    init_sentry,
    is_sentry_enabled,
    start_span,
)

__all__ = [
    "SentrySettings",
    "init_sentry",
    "is_sentry_enabled",
    "start_span",
]
