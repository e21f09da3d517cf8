"""Sentry SDK initialization with structlog-sentry bridge.

Provides:
- ``init_sentry(dsn, production)``: Initialize Sentry SDK.  No-op when *dsn*
  is empty.
- ``scrub_discount_codes(event, hint)``: ``before_send`` hook masking
  discount codes, which are bearer credentials, in outgoing events.
- ``get_sentry_processor()``: Return a structlog processor that forwards
  ERROR-level log events to Sentry.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import sentry_sdk
import structlog
from sentry_sdk.integrations.logging import LoggingIntegration
from structlog_sentry import SentryProcessor

CODE_PATTERN = re.compile(r"\b(NEGO|WELCOME20)-[A-Z0-9]+\b")
CODE_MASK = r"\1-****"


def _mask(value: Any) -> Any:
    if isinstance(value, str):
        return CODE_PATTERN.sub(CODE_MASK, value)
    if isinstance(value, dict):
        return {key: _mask(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_mask(item) for item in value]
    return value


def scrub_discount_codes(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any]:
    """Mask every discount code found anywhere in a Sentry *event*.

    Args:
        event: The event payload about to be sent.
        hint: Sentry's hint dict (unused).

    Returns:
        The event with codes replaced by ``PREFIX-****``.
    """
    return _mask(event)  # type: ignore[no-any-return]


def init_sentry(dsn: str, production: bool = False) -> None:
    """Initialize Sentry SDK with the given *dsn*.

    When *dsn* is empty the function returns immediately, with no network
    calls and no SDK initialization, so it is safe to call unconditionally.

    Args:
        dsn: Sentry DSN string.  Empty string disables Sentry.
        production: Tags events with the ``production`` environment.
    """
    if not dsn:
        return

    sentry_sdk.init(
        dsn=dsn,
        environment="production" if production else "development",
        traces_sample_rate=0.1,
        send_default_pii=False,
        before_send=scrub_discount_codes,  # type: ignore[arg-type]
        integrations=[
            # structlog-sentry reports errors; the logging integration would
            # report them a second time.
            LoggingIntegration(event_level=None, level=None),
        ],
    )


def get_sentry_processor() -> structlog.types.Processor:
    """Return a structlog processor that forwards ERROR events to Sentry.

    Insert this into the structlog processor chain **after** ``add_log_level``
    and **before** the renderer.
    """
    return SentryProcessor(event_level=logging.ERROR)
