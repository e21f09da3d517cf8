"""Tests for the background expiry sweep."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import patch

import pytest

from haggle.domain.errors import InvalidStateError, VersionConflictError
from haggle.domain.types import MessageType, NegotiationStatus
from haggle.service.negotiations import NegotiationService
from haggle.service.sweeper import run_sweeper_periodically, sweep_expired


class TestSweepExpired:
    def test_nothing_due(self, negotiations: NegotiationService, clock: Any) -> None:
        negotiations.start("buyer-1", "item-1")
        clock.advance(hours=71)
        assert sweep_expired(negotiations) == 0

    def test_expires_overdue(self, negotiations: NegotiationService, clock: Any) -> None:
        negotiation = negotiations.start("buyer-1", "item-1", price_offer=450)
        clock.advance(hours=73)

        assert sweep_expired(negotiations) == 1
        assert negotiations.get(negotiation.id).status == NegotiationStatus.EXPIRED
        with pytest.raises(InvalidStateError):
            negotiations.post_message(negotiation.id, "buyer-1", MessageType.FREE_TEXT, "hi")

    def test_second_sweep_is_noop(self, negotiations: NegotiationService, clock: Any) -> None:
        negotiations.start("buyer-1", "item-1")
        negotiations.start("buyer-1", "item-big")
        clock.advance(hours=73)
        assert sweep_expired(negotiations) == 2
        assert sweep_expired(negotiations) == 0

    def test_settled_negotiations_untouched(
        self, negotiations: NegotiationService, clock: Any
    ) -> None:
        negotiation = negotiations.start("buyer-1", "item-1", price_offer=450)
        negotiations.accept(negotiation.id, "seller-1")
        clock.advance(hours=73)
        assert sweep_expired(negotiations) == 0
        assert negotiations.get(negotiation.id).status == NegotiationStatus.ACCEPTED

    def test_conflict_skipped(self, negotiations: NegotiationService, clock: Any) -> None:
        negotiations.start("buyer-1", "item-1")
        negotiations.start("buyer-1", "item-big")
        clock.advance(hours=73)

        original = negotiations.expire_if_due
        calls: list[str] = []

        def flaky(negotiation_id: str) -> bool:
            calls.append(negotiation_id)
            if len(calls) == 1:
                raise VersionConflictError(negotiation_id, 0)
            return original(negotiation_id)

        with patch.object(negotiations, "expire_if_due", side_effect=flaky):
            assert sweep_expired(negotiations) == 1
        assert len(calls) == 2


class TestRunSweeperPeriodically:
    def test_runs_until_cancelled(self) -> None:
        sweeps: list[object] = []

        async def scenario() -> None:
            task = asyncio.create_task(run_sweeper_periodically(object(), 0.01))  # type: ignore[arg-type]
            await asyncio.sleep(0.1)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        with patch("haggle.service.sweeper.sweep_expired", side_effect=sweeps.append):
            asyncio.run(scenario())
        assert len(sweeps) >= 2

    def test_failures_do_not_stop_the_loop(self) -> None:
        attempts: list[object] = []

        def boom(service: object) -> int:
            attempts.append(service)
            raise RuntimeError("disk on fire")

        async def scenario() -> None:
            task = asyncio.create_task(run_sweeper_periodically(object(), 0.01))  # type: ignore[arg-type]
            await asyncio.sleep(0.1)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        with patch("haggle.service.sweeper.sweep_expired", side_effect=boom):
            asyncio.run(scenario())
        assert len(attempts) >= 2
