"""Metrics, request context, and error reporting."""

from haggle.observability.metrics import (
    ACTIVE_NEGOTIATIONS,
    CODES_REDEEMED,
    OFFERS_ACCEPTED,
    WELCOME_CODES_ISSUED,
    setup_metrics,
)
from haggle.observability.middleware import RequestIdMiddleware
from haggle.observability.sentry import get_sentry_processor, init_sentry

__all__ = [
    "ACTIVE_NEGOTIATIONS",
    "CODES_REDEEMED",
    "OFFERS_ACCEPTED",
    "RequestIdMiddleware",
    "WELCOME_CODES_ISSUED",
    "get_sentry_processor",
    "init_sentry",
    "setup_metrics",
]
