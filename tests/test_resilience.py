"""Tests for the conflict and storage retry decorators."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from unittest.mock import MagicMock, patch

import pytest

from haggle.domain.errors import InvalidStateError, VersionConflictError
from haggle.domain.types import NegotiationStatus
from haggle.resilience.retry import (
    CONFLICT_ATTEMPTS,
    STORAGE_ATTEMPTS,
    resilient_storage_call,
    retry_on_conflict,
)


@pytest.fixture(autouse=True)
def _no_sleep() -> Iterator[None]:
    """Skip tenacity backoff sleeps."""
    with patch("tenacity.nap.time.sleep"):
        yield


class TestRetryOnConflict:
    def test_retries_until_success(self) -> None:
        func = MagicMock(side_effect=[VersionConflictError("n1", 0), "ok"])
        func.__name__ = "op"
        assert retry_on_conflict(func)() == "ok"
        assert func.call_count == 2

    def test_gives_up_with_conflict(self) -> None:
        func = MagicMock(side_effect=VersionConflictError("n1", 0))
        func.__name__ = "op"
        with pytest.raises(VersionConflictError):
            retry_on_conflict(func)()
        assert func.call_count == CONFLICT_ATTEMPTS

    def test_business_errors_not_retried(self) -> None:
        func = MagicMock(side_effect=InvalidStateError(NegotiationStatus.REJECTED, "accept"))
        func.__name__ = "op"
        with pytest.raises(InvalidStateError):
            retry_on_conflict(func)()
        assert func.call_count == 1


class TestResilientStorageCall:
    def test_retries_locked_database(self) -> None:
        calls: list[int] = []

        @resilient_storage_call("flaky")
        def flaky() -> str:
            calls.append(1)
            if len(calls) < 2:
                raise sqlite3.OperationalError("database is locked")
            return "ok"

        assert flaky() == "ok"
        assert len(calls) == 2

    def test_reraises_after_exhaustion(self) -> None:
        calls: list[int] = []

        @resilient_storage_call("broken")
        def broken() -> None:
            calls.append(1)
            raise sqlite3.OperationalError("disk I/O error")

        with pytest.raises(sqlite3.OperationalError, match="disk I/O error"):
            broken()
        assert len(calls) == STORAGE_ATTEMPTS

    def test_integrity_errors_not_retried(self) -> None:
        calls: list[int] = []

        @resilient_storage_call("constraint")
        def constraint() -> None:
            calls.append(1)
            raise sqlite3.IntegrityError("UNIQUE constraint failed")

        with pytest.raises(sqlite3.IntegrityError):
            constraint()
        assert len(calls) == 1
