"""NegotiationStateMachine: guarded, in-memory transitions over a Negotiation."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from decimal import Decimal

from haggle.domain.errors import (
    InvalidMessageError,
    InvalidStateError,
    NoPendingOfferError,
    NotParticipantError,
)
from haggle.domain.models import MAX_MESSAGE_LENGTH, Message, Negotiation
from haggle.domain.types import (
    POSTABLE_MESSAGE_TYPES,
    MessageType,
    NegotiationStatus,
    is_price_message,
)
from haggle.messaging.filters import filter_content
from haggle.messaging.templates import resolve_template
from haggle.pricing.bounds import (
    DEFAULT_FLOOR_RATIO,
    calculate_minimum_price,
    ensure_offer_within_bounds,
)
from haggle.state_machine.transitions import TERMINAL_STATES, TRANSITIONS, NegotiationEvent

DEFAULT_NEGOTIATION_TTL = timedelta(hours=72)
MAX_REASON_LENGTH = 200


def _new_id() -> str:
    return uuid.uuid4().hex


class NegotiationStateMachine:
    """Finite state machine governing one negotiation's lifecycle.

    Applies guards and side effects to the wrapped :class:`Negotiation` in
    memory and records every transition.  It never touches storage: the
    service persists the result with a conditional write on ``version``, so
    two machines built from the same snapshot cannot both win.

    Usage::

        sm = NegotiationStateMachine.open(
            item_id="item-1", buyer_id="b", seller_id="s",
            original_price=500, now=now,
        )
        sm.post_message("b", MessageType.PRICE_OFFER, now, price_offer=450)
        sm.accept("s", "NEGO-ABCDEFGHJK", now)   # -> ACCEPTED
    """

    def __init__(self, negotiation: Negotiation) -> None:
        self._negotiation = negotiation
        self._history: list[tuple[NegotiationStatus, str, NegotiationStatus]] = []

    @classmethod
    def open(
        cls,
        *,
        item_id: str,
        buyer_id: str,
        seller_id: str,
        original_price: int,
        now: datetime,
        ttl: timedelta = DEFAULT_NEGOTIATION_TTL,
        floor_ratio: Decimal = DEFAULT_FLOOR_RATIO,
        negotiation_id: str | None = None,
    ) -> NegotiationStateMachine:
        """Create a fresh ``active`` negotiation.

        ``minimum_price`` is fixed here and never recomputed; ``expires_at``
        is a hard wall-clock deadline of ``now + ttl``.
        """
        negotiation = Negotiation(
            id=negotiation_id or _new_id(),
            item_id=item_id,
            buyer_id=buyer_id,
            seller_id=seller_id,
            original_price=original_price,
            minimum_price=calculate_minimum_price(original_price, floor_ratio),
            created_at=now,
            last_activity_at=now,
            expires_at=now + ttl,
        )
        return cls(negotiation)

    @property
    def negotiation(self) -> Negotiation:
        """Return the wrapped negotiation."""
        return self._negotiation

    @property
    def state(self) -> NegotiationStatus:
        """Return the current negotiation status."""
        return self._negotiation.status

    @property
    def is_terminal(self) -> bool:
        """Return True if the negotiation is rejected, expired, or completed."""
        return self.state in TERMINAL_STATES

    @property
    def history(self) -> list[tuple[NegotiationStatus, str, NegotiationStatus]]:
        """Return a copy of the ``(from, event, to)`` transitions applied so far."""
        return list(self._history)

    def get_valid_events(self) -> list[str]:
        """Return a sorted list of events valid from the current status."""
        if self.is_terminal:
            return []
        return sorted(event for status, event in TRANSITIONS if status == self.state)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def post_message(
        self,
        sender_id: str,
        message_type: MessageType,
        now: datetime,
        content: str | None = None,
        price_offer: int | None = None,
        template_id: str | None = None,
    ) -> Message:
        """Append a buyer or seller message, moving ``current_offer`` for prices.

        Raises:
            InvalidStateError: If the negotiation is not active.
            NotParticipantError: If *sender_id* is neither buyer nor seller.
            InvalidMessageError: If the message is malformed.
            PriceOutOfBoundsError: If a price breaks the floor or ceiling.
        """
        self._guard(NegotiationEvent.POST_MESSAGE)
        self._require_participant(sender_id, "post messages")

        if message_type not in POSTABLE_MESSAGE_TYPES:
            raise InvalidMessageError(f"'{message_type}' messages cannot be posted")

        if is_price_message(message_type):
            if price_offer is None:
                raise InvalidMessageError(f"{message_type} requires a price_offer")
            ensure_offer_within_bounds(
                price_offer,
                self._negotiation.minimum_price,
                self._negotiation.original_price,
            )
        elif price_offer is not None:
            raise InvalidMessageError(f"{message_type} must not carry a price_offer")

        text = self._resolve_content(message_type, content, price_offer, template_id)
        message = self._build_message(
            sender_id,
            message_type,
            text,
            now,
            price_offer=price_offer,
            template_id=template_id,
        )

        self._apply(NegotiationEvent.POST_MESSAGE)
        self._negotiation.messages.append(message)
        self._negotiation.last_activity_at = now
        if price_offer is not None:
            self._negotiation.current_offer = price_offer
        return message

    def check_can_accept(self, seller_id: str) -> int:
        """Run the accept guards without mutating and return the price to lock in.

        Raises:
            InvalidStateError: If the negotiation is not active.
            NotParticipantError: If *seller_id* is not the seller.
            NoPendingOfferError: If no offer is on the table.
        """
        self._guard(NegotiationEvent.ACCEPT)
        if seller_id != self._negotiation.seller_id:
            raise NotParticipantError(seller_id, self._negotiation.id, "accept offers")
        if self._negotiation.current_offer is None:
            raise NoPendingOfferError(self._negotiation.id)
        return self._negotiation.current_offer

    def accept(self, seller_id: str, credential_code: str, now: datetime) -> Message:
        """Lock in ``final_price`` and bind the minted credential.

        Returns:
            The trailing system message announcing the code.
        """
        final_price = self.check_can_accept(seller_id)
        self._apply(NegotiationEvent.ACCEPT)
        self._negotiation.final_price = final_price
        self._negotiation.discount_credential_id = credential_code
        self._negotiation.last_activity_at = now

        message = self._build_message(
            seller_id,
            MessageType.SYSTEM,
            f"Offer accepted! Discount code generated: {credential_code}.",
            now,
            moderate=False,
        )
        self._negotiation.messages.append(message)
        return message

    def reject(self, sender_id: str, now: datetime, reason: str | None = None) -> Message:
        """Close the negotiation on behalf of either party.

        Returns:
            The trailing system message recording the reason.
        """
        self._guard(NegotiationEvent.REJECT)
        self._require_participant(sender_id, "reject offers")
        if reason is not None and len(reason) > MAX_REASON_LENGTH:
            raise InvalidMessageError(f"Reason too long (max {MAX_REASON_LENGTH} characters)")

        self._apply(NegotiationEvent.REJECT)
        self._negotiation.last_activity_at = now
        text = f"Offer rejected. Reason: {reason}" if reason else "Offer rejected."
        message = self._build_message(sender_id, MessageType.SYSTEM, text, now)
        self._negotiation.messages.append(message)
        return message

    def expire(self, now: datetime) -> None:
        """Time out an active negotiation whose deadline has passed.

        Raises:
            InvalidStateError: If not active or the deadline has not passed.
        """
        self._guard(NegotiationEvent.EXPIRE)
        if not self._negotiation.is_past_expiry(now):
            raise InvalidStateError(self.state, NegotiationEvent.EXPIRE)
        self._apply(NegotiationEvent.EXPIRE)

    def complete(self, now: datetime) -> None:
        """Mark an accepted negotiation as paid for."""
        self._guard(NegotiationEvent.COMPLETE)
        self._apply(NegotiationEvent.COMPLETE)
        self._negotiation.last_activity_at = now

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _guard(self, event: str) -> None:
        if self.is_terminal or (self.state, event) not in TRANSITIONS:
            raise InvalidStateError(self.state, event)

    def _apply(self, event: str) -> NegotiationStatus:
        old_status = self.state
        new_status = TRANSITIONS[(old_status, event)]
        self._history.append((old_status, event, new_status))
        self._negotiation.status = new_status
        return new_status

    def _require_participant(self, user_id: str, action: str) -> None:
        if not self._negotiation.is_participant(user_id):
            raise NotParticipantError(user_id, self._negotiation.id, action)

    @staticmethod
    def _resolve_content(
        message_type: MessageType,
        content: str | None,
        price_offer: int | None,
        template_id: str | None,
    ) -> str:
        if template_id is not None:
            return resolve_template(template_id)
        if content is not None and content.strip():
            if len(content) > MAX_MESSAGE_LENGTH:
                raise InvalidMessageError(
                    f"Message too long (max {MAX_MESSAGE_LENGTH} characters)"
                )
            return content
        if message_type == MessageType.PRICE_OFFER:
            return f"Offered {price_offer}"
        if message_type == MessageType.COUNTER_OFFER:
            return f"Counter-offer: {price_offer}"
        raise InvalidMessageError("Message or template required")

    def _build_message(
        self,
        sender_id: str,
        message_type: MessageType,
        text: str,
        now: datetime,
        price_offer: int | None = None,
        template_id: str | None = None,
        moderate: bool = True,
    ) -> Message:
        filtered = filter_content(text) if moderate else None
        return Message(
            id=_new_id(),
            negotiation_id=self._negotiation.id,
            sender_id=sender_id,
            type=message_type,
            content=filtered.content[:MAX_MESSAGE_LENGTH] if filtered else text,
            price_offer=price_offer,
            template_id=template_id,
            is_filtered=filtered.is_filtered if filtered else False,
            filtered_reason=filtered.reason if filtered else None,
            timestamp=now,
        )
