# =============================================================================
# Sentry Error Tracking Integration
# =============================================================================
#
# Setup:
#   1. Create a Python project at sentry.io
#   2. Copy DSN to .env: SENTRY_DSN=https://...@sentry.io/...
#
# Usage:
#   Call init_sentry() at app startup (in memberhub/api/app.py)
#
# =============================================================================

import logging

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from memberhub.config import get_settings

logger = logging.getLogger(__name__)


def init_sentry() -> bool:
    """
    Initialize Sentry error tracking.

    Returns True if initialized, False if skipped.
    """
    settings = get_settings()

    if not settings.sentry_dsn:
        logger.info("SENTRY_DSN not set - error tracking disabled")
        return False

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        traces_sample_rate=0.1 if settings.is_production else 1.0,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            StarletteIntegration(transaction_style="endpoint"),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR,
            ),
        ],
        # Subject ids only, no PII
        send_default_pii=False,
        before_send=_filter_events,
        before_send_transaction=_filter_transactions,
    )

    logger.info(f"Sentry initialized for {settings.environment}")
    return True


def _is_enabled() -> bool:
    return sentry_sdk.get_client().is_active()


def _filter_events(event: dict, hint: dict) -> dict | None:
    """Filter out noisy or sensitive events."""
    if "exc_info" in hint:
        _, exc_value, _ = hint["exc_info"]

        # Don't report auth failures, 404s or validation errors
        from fastapi import HTTPException
        if isinstance(exc_value, HTTPException):
            if exc_value.status_code in (401, 403, 404, 422):
                return None

    if "request" in event:
        headers = event["request"].get("headers", {})
        for key in list(headers.keys()):
            if key.lower() in ("authorization", "cookie", "apikey"):
                headers[key] = "[Filtered]"

    return event


def _filter_transactions(event: dict, hint: dict) -> dict | None:
    """Filter out health checks."""
    if event.get("transaction", "") in ("/health", "/healthz"):
        return None
    return event


def capture_message(message: str, level: str = "info", **context) -> str | None:
    """
    Capture a message to Sentry.

    Levels: fatal, error, warning, info, debug
    """
    if not _is_enabled():
        logger.log(getattr(logging, level.upper(), logging.INFO), message)
        return None

    with sentry_sdk.new_scope() as scope:
        for key, value in context.items():
            scope.set_extra(key, value)
        return sentry_sdk.capture_message(message, level=level)

