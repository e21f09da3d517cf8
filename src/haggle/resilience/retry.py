"""Retry policies for optimistic-concurrency conflicts and storage failures.

Two tenacity decorators with the same shape:

- ``retry_on_conflict`` re-runs a whole read-modify-write when a conditional
  write lost a race (:class:`VersionConflictError`).  Attempts are short and
  few; a conflict that survives them surfaces as a "please try again".
- ``resilient_storage_call(name)`` retries ``sqlite3.OperationalError``
  (locked or busy database) with exponential backoff, then re-raises.  It
  never converts an infrastructure failure into a business outcome.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from typing import Any, TypeVar

import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from haggle.domain.errors import VersionConflictError

logger = structlog.get_logger()

F = TypeVar("F", bound=Callable[..., Any])

CONFLICT_ATTEMPTS = 3
STORAGE_ATTEMPTS = 3


def _log_conflict_retry(retry_state: RetryCallState) -> None:
    """Log a warning before re-running a conflicted operation."""
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Retrying after version conflict",
        operation=retry_state.fn.__name__ if retry_state.fn else "unknown",
        attempt=retry_state.attempt_number,
        negotiation_id=getattr(exception, "negotiation_id", None),
    )


def _log_storage_retry(retry_state: RetryCallState) -> None:
    """Log a warning before each storage retry."""
    storage_name = getattr(retry_state.fn, "_storage_name", "unknown") if retry_state.fn else "unknown"
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Retrying storage call",
        storage_name=storage_name,
        attempt=retry_state.attempt_number,
        wait=retry_state.next_action.sleep if retry_state.next_action else 0,
        exception=str(exception),
    )


def _log_storage_failure(retry_state: RetryCallState) -> Any:
    """Log the final failure, then re-raise the last exception."""
    storage_name = getattr(retry_state.fn, "_storage_name", "unknown") if retry_state.fn else "unknown"
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    logger.error(
        "Storage call failed after all retries",
        storage_name=storage_name,
        attempts=retry_state.attempt_number,
        exception=str(exception),
    )
    if retry_state.outcome is not None:
        return retry_state.outcome.result()
    return None


def retry_on_conflict(func: F) -> F:
    """Re-run *func* when it raises :class:`VersionConflictError`.

    *func* must reload its state on every call; retrying a write built from
    the stale snapshot would conflict again.

    Returns:
        The wrapped function.  After ``CONFLICT_ATTEMPTS`` the last conflict
        is re-raised unchanged.
    """
    return retry(  # type: ignore[return-value]
        retry=retry_if_exception_type(VersionConflictError),
        stop=stop_after_attempt(CONFLICT_ATTEMPTS),
        wait=wait_exponential_jitter(initial=0.01, max=0.2, jitter=0.05),
        before_sleep=_log_conflict_retry,
        reraise=True,
    )(func)


def resilient_storage_call(storage_name: str) -> Callable[[F], F]:
    """Create a retry decorator for a call that touches the database.

    Returns a tenacity retry decorator configured with:
    - 3 attempts maximum
    - Exponential backoff with jitter (0.1s initial, 2s max)
    - Warning log before each retry, error log on final failure
    - Original exception re-raised after exhaustion

    Args:
        storage_name: Human-readable name of the operation (used in logs).

    Returns:
        A decorator that wraps the function with retry logic.
    """

    def decorator(func: F) -> F:
        func._storage_name = storage_name  # type: ignore[attr-defined]

        wrapped = retry(
            retry=retry_if_exception_type(sqlite3.OperationalError),
            stop=stop_after_attempt(STORAGE_ATTEMPTS),
            wait=wait_exponential_jitter(initial=0.1, max=2, jitter=0.1),
            before_sleep=_log_storage_retry,
            retry_error_callback=_log_storage_failure,
            reraise=True,
        )(func)

        return wrapped  # type: ignore[no-any-return]

    return decorator
