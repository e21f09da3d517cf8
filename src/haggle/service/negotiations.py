"""Negotiation service: the request-facing operations over negotiations.

Each call reads the negotiation, runs the state machine in memory, and
persists with a conditional write on ``version``.  A lost race raises
:class:`VersionConflictError` inside the call, which ``retry_on_conflict``
answers by re-running the whole read-modify-write from a fresh read.

Catalog lookups happen before any write, so no transaction is ever open
while waiting on a collaborator.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

import structlog

from haggle.credentials.store import CredentialStore
from haggle.domain.errors import (
    DuplicateActiveNegotiationError,
    InvalidStateError,
    NotParticipantError,
    RateLimitExceededError,
    SelfNegotiationError,
)
from haggle.domain.models import DiscountCredential, Message, Negotiation
from haggle.domain.types import CredentialStatus, MessageType, NegotiationStatus
from haggle.external.catalog import Catalog
from haggle.observability.metrics import ACTIVE_NEGOTIATIONS, OFFERS_ACCEPTED
from haggle.pricing.bounds import DEFAULT_FLOOR_RATIO
from haggle.pricing.discounts import NEGOTIATED_CODE_TTL, negotiated_discount
from haggle.resilience.retry import resilient_storage_call, retry_on_conflict
from haggle.state.serializers import utc_now
from haggle.state.store import NegotiationStore
from haggle.state_machine.machine import DEFAULT_NEGOTIATION_TTL, NegotiationStateMachine
from haggle.state_machine.transitions import NegotiationEvent

logger = structlog.get_logger()

RATE_LIMIT_WINDOW = timedelta(hours=1)


@dataclass(frozen=True)
class NegotiationPolicy:
    """Tunable limits applied to every negotiation."""

    ttl: timedelta = DEFAULT_NEGOTIATION_TTL
    floor_ratio: Decimal = DEFAULT_FLOOR_RATIO
    code_ttl: timedelta = NEGOTIATED_CODE_TTL
    max_messages_per_hour: int = 10


@dataclass(frozen=True)
class AcceptedOffer:
    """Result of a successful accept: the settled negotiation and its code."""

    negotiation: Negotiation
    credential: DiscountCredential


class NegotiationService:
    """Start, converse in, settle, and expire negotiations."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        catalog: Catalog,
        code_salt: str,
        policy: NegotiationPolicy | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize over one database connection.

        Args:
            conn: Connection used for every read and write of this service.
                  Not shared across threads.
            catalog: Source of item prices and sellers.
            code_salt: Secret for deriving negotiated discount codes.
            policy: Expiry, floor, code lifetime, and rate limit settings.
            clock: Source of "now".
        """
        self._conn = conn
        self._catalog = catalog
        self._store = NegotiationStore(conn)
        self._credentials = CredentialStore(conn, code_salt, clock)
        self._policy = policy or NegotiationPolicy()
        self._clock = clock

    def now(self) -> datetime:
        """Return the current time according to this service's clock."""
        return self._clock()

    @property
    def store(self) -> NegotiationStore:
        """The negotiation store bound to this service's connection."""
        return self._store

    @property
    def credentials(self) -> CredentialStore:
        """The credential store used to mint negotiated codes."""
        return self._credentials

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @resilient_storage_call("start_negotiation")
    @retry_on_conflict
    def start(
        self,
        buyer_id: str,
        item_id: str,
        message: str | None = None,
        template_id: str | None = None,
        price_offer: int | None = None,
    ) -> Negotiation:
        """Open a negotiation on *item_id*, optionally with a first message.

        A price in the first message becomes the opening ``current_offer``.

        Raises:
            ItemNotFoundError: If the catalog does not know the item.
            SelfNegotiationError: If the buyer sells the item.
            DuplicateActiveNegotiationError: If the buyer already has an
                active negotiation on the item.
            PriceOutOfBoundsError: If the opening price breaks the bounds.
        """
        original_price = self._catalog.get_item_price(item_id)
        seller_id = self._catalog.get_item_seller(item_id)
        if seller_id == buyer_id:
            raise SelfNegotiationError(item_id)

        now = self._clock()
        existing = self._store.find_active(buyer_id, item_id)
        if existing is not None:
            if not existing.is_past_expiry(now):
                raise DuplicateActiveNegotiationError(buyer_id, item_id)
            self._expire(existing, now)

        sm = NegotiationStateMachine.open(
            item_id=item_id,
            buyer_id=buyer_id,
            seller_id=seller_id,
            original_price=original_price,
            now=now,
            ttl=self._policy.ttl,
            floor_ratio=self._policy.floor_ratio,
        )
        if message is not None or template_id is not None or price_offer is not None:
            sm.post_message(
                buyer_id,
                _opening_message_type(template_id, price_offer),
                now,
                content=message,
                price_offer=price_offer,
                template_id=template_id,
            )

        negotiation = self._store.create(sm.negotiation)
        ACTIVE_NEGOTIATIONS.inc()
        logger.info(
            "negotiation_started",
            negotiation_id=negotiation.id,
            buyer_id=buyer_id,
            item_id=item_id,
            original_price=original_price,
            minimum_price=negotiation.minimum_price,
        )
        return negotiation

    @resilient_storage_call("post_message")
    @retry_on_conflict
    def post_message(
        self,
        negotiation_id: str,
        sender_id: str,
        message_type: MessageType,
        content: str | None = None,
        price_offer: int | None = None,
        template_id: str | None = None,
    ) -> Message:
        """Append a message from the buyer or seller.

        Raises:
            NegotiationNotFoundError: If the negotiation does not exist.
            InvalidStateError: If the negotiation is no longer active.
            NotParticipantError: If *sender_id* is not buyer or seller.
            PriceOutOfBoundsError: If a price breaks the bounds.
            RateLimitExceededError: If the sender is over the hourly limit.
        """
        now = self._clock()
        sm = self._load_for_mutation(negotiation_id, now, NegotiationEvent.POST_MESSAGE)
        negotiation = sm.negotiation
        expected_version = negotiation.version

        message = sm.post_message(
            sender_id,
            message_type,
            now,
            content=content,
            price_offer=price_offer,
            template_id=template_id,
        )
        self._check_rate_limit(negotiation_id, sender_id, now)

        [stored] = self._store.save_transition(negotiation, expected_version, [message])
        logger.info(
            "message_posted",
            negotiation_id=negotiation_id,
            sender_id=sender_id,
            type=message_type.value,
            price_offer=price_offer,
            is_filtered=stored.is_filtered,
        )
        return stored

    @resilient_storage_call("accept_offer")
    @retry_on_conflict
    def accept(self, negotiation_id: str, seller_id: str) -> AcceptedOffer:
        """Accept the offer on the table and mint its discount credential.

        The credential insert and the ``accepted`` transition commit in one
        transaction; losing the version race rolls both back.

        Raises:
            NegotiationNotFoundError: If the negotiation does not exist.
            InvalidStateError: If the negotiation is no longer active.
            NotParticipantError: If *seller_id* is not the seller.
            NoPendingOfferError: If no price has been offered.
        """
        now = self._clock()
        sm = self._load_for_mutation(negotiation_id, now, NegotiationEvent.ACCEPT)
        negotiation = sm.negotiation
        expected_version = negotiation.version

        final_price = sm.check_can_accept(seller_id)
        code = self._credentials.code_for_negotiation(negotiation_id)
        system_message = sm.accept(seller_id, code, now)

        with self._conn:
            self._credentials.insert_negotiated(
                negotiation_id,
                negotiation.buyer_id,
                negotiation.item_id,
                negotiated_discount(negotiation.original_price, final_price),
                now + self._policy.code_ttl,
            )
            self._store.update(negotiation, expected_version, [system_message])

        credential = self._credentials.get_by_negotiation(negotiation_id)
        if credential is None:
            raise RuntimeError(f"credential for negotiation {negotiation_id} missing after accept")

        ACTIVE_NEGOTIATIONS.dec()
        OFFERS_ACCEPTED.inc()
        logger.info(
            "offer_accepted",
            negotiation_id=negotiation_id,
            final_price=final_price,
            discount_amount=credential.discount_amount,
            code=credential.code,
        )
        return AcceptedOffer(negotiation=self._store.get(negotiation_id), credential=credential)

    @resilient_storage_call("reject_offer")
    @retry_on_conflict
    def reject(self, negotiation_id: str, sender_id: str, reason: str | None = None) -> Negotiation:
        """Close the negotiation on behalf of either party.

        Raises:
            NegotiationNotFoundError: If the negotiation does not exist.
            InvalidStateError: If the negotiation is no longer active.
            NotParticipantError: If *sender_id* is not buyer or seller.
        """
        now = self._clock()
        sm = self._load_for_mutation(negotiation_id, now, NegotiationEvent.REJECT)
        negotiation = sm.negotiation
        expected_version = negotiation.version

        system_message = sm.reject(sender_id, now, reason)
        self._store.save_transition(negotiation, expected_version, [system_message])

        ACTIVE_NEGOTIATIONS.dec()
        logger.info("offer_rejected", negotiation_id=negotiation_id, sender_id=sender_id)
        return self._store.get(negotiation_id)

    @resilient_storage_call("mark_completed")
    @retry_on_conflict
    def mark_completed(self, negotiation_id: str, payment_id: str) -> Negotiation:
        """Close an accepted negotiation once its code paid for *payment_id*.

        Raises:
            NegotiationNotFoundError: If the negotiation does not exist.
            InvalidStateError: If the negotiation is not accepted, or its
                credential was not redeemed by *payment_id*.
        """
        now = self._clock()
        negotiation = self._store.get(negotiation_id)
        sm = NegotiationStateMachine(negotiation)
        expected_version = negotiation.version
        sm.complete(now)

        credential = self._credentials.get_by_negotiation(negotiation_id)
        if (
            credential is None
            or credential.status != CredentialStatus.USED
            or credential.used_by_payment_id != payment_id
        ):
            logger.warning(
                "completion_refused",
                negotiation_id=negotiation_id,
                payment_id=payment_id,
            )
            raise InvalidStateError(NegotiationStatus.ACCEPTED, NegotiationEvent.COMPLETE)

        self._store.save_transition(negotiation, expected_version)
        logger.info("negotiation_completed", negotiation_id=negotiation_id, payment_id=payment_id)
        return negotiation

    @resilient_storage_call("expire_negotiation")
    def expire_if_due(self, negotiation_id: str) -> bool:
        """Expire the negotiation if it is active and past its deadline.

        Returns:
            True if this call performed the transition.

        Raises:
            VersionConflictError: If another writer changed it concurrently.
        """
        negotiation = self._store.get(negotiation_id)
        now = self._clock()
        if negotiation.status != NegotiationStatus.ACTIVE or not negotiation.is_past_expiry(now):
            return False
        self._expire(negotiation, now)
        return True

    def get(self, negotiation_id: str, viewer_id: str | None = None) -> Negotiation:
        """Return a negotiation with its full message log.

        Raises:
            NegotiationNotFoundError: If the negotiation does not exist.
            NotParticipantError: If *viewer_id* is given and is neither
                buyer nor seller.
        """
        negotiation = self._store.get(negotiation_id)
        if viewer_id is not None and not negotiation.is_participant(viewer_id):
            raise NotParticipantError(viewer_id, negotiation_id, "view")
        return negotiation

    def messages_since(self, negotiation_id: str, viewer_id: str, cursor: int = 0) -> list[Message]:
        """Return messages after sequence number *cursor*, oldest first."""
        self.get(negotiation_id, viewer_id)
        return list(self._store.log.list_since(negotiation_id, cursor))

    def list_mine(
        self,
        user_id: str,
        status: NegotiationStatus | None = None,
        limit: int = 50,
    ) -> list[Negotiation]:
        """Return negotiations where *user_id* is buyer or seller."""
        return self._store.list_for_user(user_id, status=status, limit=limit)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_for_mutation(
        self, negotiation_id: str, now: datetime, event: NegotiationEvent
    ) -> NegotiationStateMachine:
        """Load a negotiation for *event*, expiring it first if it timed out."""
        negotiation = self._store.get(negotiation_id)
        if negotiation.status == NegotiationStatus.ACTIVE and negotiation.is_past_expiry(now):
            self._expire(negotiation, now)
            raise InvalidStateError(NegotiationStatus.EXPIRED, event)
        return NegotiationStateMachine(negotiation)

    def _expire(self, negotiation: Negotiation, now: datetime) -> None:
        expected_version = negotiation.version
        NegotiationStateMachine(negotiation).expire(now)
        self._store.save_transition(negotiation, expected_version)
        ACTIVE_NEGOTIATIONS.dec()
        logger.info(
            "negotiation_expired",
            negotiation_id=negotiation.id,
            expires_at=negotiation.expires_at.isoformat(),
        )

    def _check_rate_limit(self, negotiation_id: str, sender_id: str, now: datetime) -> None:
        # Concurrent posts to one negotiation collide on its version; the
        # loser re-runs post_message and so re-counts after the winner commits.
        limit = self._policy.max_messages_per_hour
        recent = self._store.log.count_since(negotiation_id, sender_id, now - RATE_LIMIT_WINDOW)
        if recent >= limit:
            logger.info("rate_limit_exceeded", negotiation_id=negotiation_id, sender_id=sender_id)
            raise RateLimitExceededError(sender_id, limit)


def _opening_message_type(template_id: str | None, price_offer: int | None) -> MessageType:
    if price_offer is not None:
        return MessageType.PRICE_OFFER
    if template_id is not None:
        return MessageType.TEMPLATE
    return MessageType.FREE_TEXT
