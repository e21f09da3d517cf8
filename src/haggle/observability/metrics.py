"""Prometheus metrics instrumentation for the haggle engine.

Provides:
- ``setup_metrics(app)``: Attach prometheus-fastapi-instrumentator to a FastAPI app,
  exposing ``/metrics`` with HTTP request duration/count plus business metrics.
- ``ACTIVE_NEGOTIATIONS``: Gauge of negotiations currently in ``active`` status.
- ``OFFERS_ACCEPTED``: Counter of negotiations reaching ``accepted``.
- ``CODES_REDEEMED``: Counter of successful redemptions, labelled by code kind.
- ``WELCOME_CODES_ISSUED``: Counter of welcome codes handed out.

Business metrics are updated at state transitions; the gauge is seeded from
the database at startup.
"""

from __future__ import annotations

from fastapi import FastAPI
from prometheus_client import Counter, Gauge
from prometheus_fastapi_instrumentator import Instrumentator

ACTIVE_NEGOTIATIONS: Gauge = Gauge(
    "haggle_active_negotiations",
    "Number of negotiations currently in active status",
)

OFFERS_ACCEPTED: Counter = Counter(
    "haggle_offers_accepted_total",
    "Total number of negotiations reaching accepted status",
)

CODES_REDEEMED: Counter = Counter(
    "haggle_codes_redeemed_total",
    "Total number of discount codes successfully redeemed",
    ["kind"],
)

WELCOME_CODES_ISSUED: Counter = Counter(
    "haggle_welcome_codes_issued_total",
    "Total number of welcome codes issued",
)


def setup_metrics(app: FastAPI) -> None:
    """Instrument *app* with Prometheus HTTP metrics and expose ``/metrics``.

    Excludes health/ready/metrics endpoints from instrumentation to avoid
    noise in dashboards.

    Args:
        app: The FastAPI application to instrument.
    """
    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=["/health", "/ready", "/metrics"],
    ).instrument(app).expose(app, include_in_schema=False, should_gzip=True)
