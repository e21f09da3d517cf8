"""Background expiry sweep for timed-out negotiations."""

from __future__ import annotations

import asyncio

import structlog

from haggle.domain.errors import VersionConflictError
from haggle.service.negotiations import NegotiationService

logger = structlog.get_logger()


def sweep_expired(service: NegotiationService) -> int:
    """Expire every active negotiation whose deadline has passed.

    A negotiation changed by a concurrent request is skipped; if it is still
    overdue the next sweep picks it up (and any request touching it expires
    it on the spot).

    Returns:
        The number of negotiations this sweep expired.
    """
    expired = 0
    for negotiation_id in service.store.list_expirable_ids(service.now()):
        try:
            if service.expire_if_due(negotiation_id):
                expired += 1
        except VersionConflictError:
            logger.info("expiry_skipped_conflict", negotiation_id=negotiation_id)
    if expired:
        logger.info("expiry_sweep_finished", expired=expired)
    return expired


async def run_sweeper_periodically(service: NegotiationService, interval_seconds: float) -> None:
    """Run :func:`sweep_expired` every *interval_seconds* until cancelled.

    The sweep runs in a worker thread.  *service* should own a connection
    that no request handler uses.

    Args:
        service: Negotiation service bound to the sweeper's connection.
        interval_seconds: Pause between sweeps.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(sweep_expired, service)
        except Exception:
            logger.exception("Expiry sweep failed")
