"""
Sentry Error Tracking
=====================

Centralized error tracking using Sentry.

Related files:
- app/main.py: Initializes Sentry on app startup
- app/deps.py: Sets user context after authentication
- app/routers/shopify_sync.py: Captures sync failures explicitly

Environment Variables:
- SENTRY_DSN: Sentry project DSN (Sentry stays disabled without it)
- ENVIRONMENT: Environment name (production, staging, development)

All helpers are no-ops while the SDK is not initialised, so tests and local
runs need no DSN.
"""

from __future__ import annotations

import os
import logging
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

logger = logging.getLogger(__name__)


def init_sentry() -> bool:
    """Initialize Sentry SDK for FastAPI.

    Should be called once during application startup, before any routes are
    defined.

    Returns:
        True if Sentry was initialized, False when no DSN is configured.
    """
    dsn = os.environ.get("SENTRY_DSN")
    if not dsn:
        logger.debug("[SENTRY] SENTRY_DSN not set - error tracking disabled")
        return False

    environment = os.environ.get("ENVIRONMENT", "development")

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(
                level=logging.INFO,         # Capture INFO+ as breadcrumbs
                event_level=logging.ERROR,  # Send ERROR+ as events
            ),
        ],
        traces_sample_rate=0.1,
        # Don't send PII by default (we set user explicitly)
        send_default_pii=False,
        release=os.environ.get("RELEASE_VERSION"),
    )

    logger.info("[SENTRY] Initialized for %s environment", environment)
    return True


def set_user_context(user_id: str, email: Optional[str] = None) -> None:
    """Attach the authenticated user to subsequent Sentry events."""
    sentry_sdk.set_user({"id": user_id, "email": email})


def clear_user_context() -> None:
    """Clear user context from Sentry (logout)."""
    sentry_sdk.set_user(None)


def capture_exception(exception: Exception, extra: Optional[dict] = None) -> None:
    """Capture a handled exception to Sentry.

    Use this for exceptions that are caught and turned into an HTTP error but
    should still be tracked.

    Args:
        exception: The exception to capture
        extra: Additional context to attach to the event
    """
    with sentry_sdk.new_scope() as scope:
        for key, value in (extra or {}).items():
            scope.set_extra(key, value)
        sentry_sdk.capture_exception(exception)
