"""
Telemetry Module
================

Observability for the stock ledger backend.

Components:
- sentry.py: Error tracking (enabled when SENTRY_DSN is set)

Logging itself is plain `logging` configured in app/main.py.

Usage:
    from app.telemetry import init_observability

    status = init_observability()
"""

from app.telemetry.sentry import (
    init_sentry,
    set_user_context,
    clear_user_context,
    capture_exception,
)


def init_observability() -> dict:
    """Initialize all observability tools.

    Returns:
        Dict with status of each tool initialization, e.g. {"sentry": False}.
    """
    return {
        "sentry": init_sentry(),
    }


__all__ = [
    "init_observability",
    "init_sentry",
    "set_user_context",
    "clear_user_context",
    "capture_exception",
]
