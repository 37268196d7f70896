"""Sentry error tracking integration."""

from __future__ import annotations

import structlog

from api.config import get_settings
from api.exceptions import PerfboardError

logger = structlog.get_logger(__name__)

# Flag to track if Sentry is initialized
_sentry_initialized = False

SENSITIVE_HEADERS = ("authorization", "cookie", "x-api-key")


def init_sentry() -> bool:
    """Initialize Sentry SDK if configured.

    Returns True if Sentry was initialized, False otherwise.
    """
    global _sentry_initialized

    settings = get_settings()

    if not settings.sentry_dsn:
        logger.info("Sentry DSN not configured, skipping initialization")
        return False

    if _sentry_initialized:
        return True

    try:
        import sentry_sdk
        from sentry_sdk.integrations.asyncio import AsyncioIntegration
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.httpx import HttpxIntegration
        from sentry_sdk.integrations.logging import LoggingIntegration
        from sentry_sdk.integrations.rq import RqIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
        from sentry_sdk.integrations.starlette import StarletteIntegration

        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.env,
            release="perfboard@0.1.0",
            sample_rate=1.0,
            traces_sample_rate=0.1 if settings.is_production else 1.0,
            # Identity comes from a gateway header; never ship it by default
            send_default_pii=False,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                StarletteIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
                HttpxIntegration(),
                AsyncioIntegration(),
                RqIntegration(),
                LoggingIntegration(level=None, event_level=None),
            ],
            before_send=_before_send,
            before_send_transaction=_before_send_transaction,
        )

        _sentry_initialized = True
        logger.info("Sentry initialized", environment=settings.env)
        return True

    except Exception as e:
        logger.error("Failed to initialize Sentry", error=str(e))
        return False


def _before_send(event: dict, hint: dict) -> dict | None:
    """Drop client errors and scrub credentials before sending."""
    if "exc_info" in hint:
        _, exc_value, _ = hint["exc_info"]

        # 4xx domain errors are expected outcomes, not bugs
        if isinstance(exc_value, PerfboardError) and 400 <= exc_value.status_code < 500:
            return None

    headers = event.get("request", {}).get("headers")
    if headers:
        for header in SENSITIVE_HEADERS:
            if header in headers:
                headers[header] = "[Filtered]"

    return event


def _before_send_transaction(event: dict, hint: dict) -> dict | None:  # noqa: ARG001
    """Skip health check and scrape transactions."""
    if event.get("transaction") in ("/api/health", "/api/ready", "/metrics"):
        return None
    return event


def set_user_context(user_id: str, role: str | None = None) -> None:
    """Attach the acting user to subsequent Sentry events."""
    if not _sentry_initialized:
        return

    import sentry_sdk

    sentry_sdk.set_user({"id": user_id})
    if role:
        sentry_sdk.set_tag("role", role)


def capture_exception(exception: Exception) -> str | None:
    """Capture an exception and send to Sentry.

    Returns the event ID if captured, None otherwise.
    """
    if not _sentry_initialized:
        return None

    import sentry_sdk

    event_id: str | None = sentry_sdk.capture_exception(exception)
    return event_id
