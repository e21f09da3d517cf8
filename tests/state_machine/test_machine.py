"""Tests for the NegotiationStateMachine class."""

from datetime import UTC, datetime, timedelta

import pytest

from haggle.domain.errors import (
    InvalidMessageError,
    InvalidStateError,
    NoPendingOfferError,
    NotParticipantError,
    PriceOutOfBoundsError,
)
from haggle.domain.types import MessageType, NegotiationStatus
from haggle.messaging.filters import FILTER_REPLACEMENT
from haggle.state_machine.machine import NegotiationStateMachine
from haggle.state_machine.transitions import NegotiationEvent

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


@pytest.fixture
def sm() -> NegotiationStateMachine:
    """A fresh negotiation on a 500 item between buyer-1 and seller-1."""
    return NegotiationStateMachine.open(
        item_id="item-1",
        buyer_id="buyer-1",
        seller_id="seller-1",
        original_price=500,
        now=NOW,
        negotiation_id="n1",
    )


# ===================================================================
# Opening
# ===================================================================
class TestOpen:
    def test_initial_state(self, sm: NegotiationStateMachine) -> None:
        negotiation = sm.negotiation
        assert sm.state == NegotiationStatus.ACTIVE
        assert negotiation.minimum_price == 350
        assert negotiation.current_offer is None
        assert negotiation.expires_at == NOW + timedelta(hours=72)
        assert not sm.is_terminal
        assert sm.history == []

    def test_generates_id(self) -> None:
        sm = NegotiationStateMachine.open(
            item_id="i", buyer_id="b", seller_id="s", original_price=100, now=NOW
        )
        assert len(sm.negotiation.id) == 32

    def test_valid_events_when_active(self, sm: NegotiationStateMachine) -> None:
        assert sm.get_valid_events() == ["accept", "expire", "post_message", "reject"]


# ===================================================================
# post_message
# ===================================================================
class TestPostMessage:
    def test_buyer_offer_above_floor(self, sm: NegotiationStateMachine) -> None:
        msg = sm.post_message("buyer-1", MessageType.PRICE_OFFER, NOW, price_offer=450)
        assert sm.negotiation.current_offer == 450
        assert msg.content == "Offered 450"
        assert sm.negotiation.messages == [msg]
        assert sm.history == [
            (NegotiationStatus.ACTIVE, NegotiationEvent.POST_MESSAGE, NegotiationStatus.ACTIVE)
        ]

    def test_offer_below_floor_rejected(self, sm: NegotiationStateMachine) -> None:
        with pytest.raises(PriceOutOfBoundsError):
            sm.post_message("buyer-1", MessageType.PRICE_OFFER, NOW, price_offer=300)
        assert sm.negotiation.current_offer is None
        assert sm.negotiation.messages == []

    def test_offer_above_list_price_rejected(self, sm: NegotiationStateMachine) -> None:
        with pytest.raises(PriceOutOfBoundsError):
            sm.post_message("seller-1", MessageType.COUNTER_OFFER, NOW, price_offer=501)

    def test_boundaries_inclusive(self, sm: NegotiationStateMachine) -> None:
        sm.post_message("buyer-1", MessageType.PRICE_OFFER, NOW, price_offer=350)
        sm.post_message("seller-1", MessageType.COUNTER_OFFER, NOW, price_offer=500)
        assert sm.negotiation.current_offer == 500

    def test_zero_offer_on_unit_priced_item(self) -> None:
        sm = NegotiationStateMachine.open(
            item_id="tiny", buyer_id="b", seller_id="s", original_price=1, now=NOW
        )
        assert sm.negotiation.minimum_price == 0
        msg = sm.post_message("b", MessageType.PRICE_OFFER, NOW, price_offer=0)
        assert msg.price_offer == 0
        assert sm.negotiation.current_offer == 0

        sm.accept("s", "NEGO-TINY", NOW)
        assert sm.state == NegotiationStatus.ACCEPTED
        assert sm.negotiation.final_price == 0

    def test_negative_offer_out_of_bounds(self, sm: NegotiationStateMachine) -> None:
        with pytest.raises(PriceOutOfBoundsError):
            sm.post_message("buyer-1", MessageType.PRICE_OFFER, NOW, price_offer=-5)

    def test_seller_counter_below_floor_rejected(self, sm: NegotiationStateMachine) -> None:
        with pytest.raises(PriceOutOfBoundsError):
            sm.post_message("seller-1", MessageType.COUNTER_OFFER, NOW, price_offer=349)

    def test_counter_offer_default_content(self, sm: NegotiationStateMachine) -> None:
        msg = sm.post_message("seller-1", MessageType.COUNTER_OFFER, NOW, price_offer=480)
        assert msg.content == "Counter-offer: 480"

    def test_free_text_keeps_offer(self, sm: NegotiationStateMachine) -> None:
        sm.post_message("buyer-1", MessageType.PRICE_OFFER, NOW, price_offer=450)
        later = NOW + timedelta(minutes=5)
        sm.post_message("seller-1", MessageType.FREE_TEXT, later, content="Let me think")
        assert sm.negotiation.current_offer == 450
        assert sm.negotiation.last_activity_at == later

    def test_template_resolves_content(self, sm: NegotiationStateMachine) -> None:
        msg = sm.post_message("buyer-1", MessageType.TEMPLATE, NOW, template_id="best_offer")
        assert msg.content == "What's your best offer for this project?"
        assert msg.template_id == "best_offer"

    def test_unknown_template(self, sm: NegotiationStateMachine) -> None:
        with pytest.raises(InvalidMessageError, match="Unknown template"):
            sm.post_message("buyer-1", MessageType.TEMPLATE, NOW, template_id="nope")

    def test_non_participant(self, sm: NegotiationStateMachine) -> None:
        with pytest.raises(NotParticipantError):
            sm.post_message("stranger", MessageType.FREE_TEXT, NOW, content="hi")

    def test_system_messages_cannot_be_posted(self, sm: NegotiationStateMachine) -> None:
        with pytest.raises(InvalidMessageError, match="cannot be posted"):
            sm.post_message("buyer-1", MessageType.SYSTEM, NOW, content="fake")

    def test_price_type_requires_price(self, sm: NegotiationStateMachine) -> None:
        with pytest.raises(InvalidMessageError, match="requires a price_offer"):
            sm.post_message("buyer-1", MessageType.PRICE_OFFER, NOW)

    def test_text_type_rejects_price(self, sm: NegotiationStateMachine) -> None:
        with pytest.raises(InvalidMessageError, match="must not carry"):
            sm.post_message("buyer-1", MessageType.FREE_TEXT, NOW, content="x", price_offer=400)

    def test_empty_free_text(self, sm: NegotiationStateMachine) -> None:
        with pytest.raises(InvalidMessageError, match="required"):
            sm.post_message("buyer-1", MessageType.FREE_TEXT, NOW, content="   ")

    def test_too_long(self, sm: NegotiationStateMachine) -> None:
        with pytest.raises(InvalidMessageError, match="too long"):
            sm.post_message("buyer-1", MessageType.FREE_TEXT, NOW, content="x" * 501)

    def test_contact_details_filtered(self, sm: NegotiationStateMachine) -> None:
        msg = sm.post_message(
            "buyer-1", MessageType.FREE_TEXT, NOW, content="email me at me@example.com"
        )
        assert msg.is_filtered
        assert FILTER_REPLACEMENT in msg.content
        assert "me@example.com" not in msg.content


# ===================================================================
# accept / reject / expire / complete
# ===================================================================
class TestAccept:
    def test_accept_locks_final_price(self, sm: NegotiationStateMachine) -> None:
        sm.post_message("buyer-1", MessageType.PRICE_OFFER, NOW, price_offer=450)
        msg = sm.accept("seller-1", "NEGO-ABCDEFGHJK", NOW)
        negotiation = sm.negotiation
        assert sm.state == NegotiationStatus.ACCEPTED
        assert negotiation.final_price == 450
        assert negotiation.discount_credential_id == "NEGO-ABCDEFGHJK"
        assert msg.type == MessageType.SYSTEM
        assert "NEGO-ABCDEFGHJK" in msg.content
        assert sm.get_valid_events() == ["complete"]

    def test_accept_without_offer(self, sm: NegotiationStateMachine) -> None:
        with pytest.raises(NoPendingOfferError):
            sm.accept("seller-1", "NEGO-X", NOW)

    def test_buyer_cannot_accept(self, sm: NegotiationStateMachine) -> None:
        sm.post_message("seller-1", MessageType.COUNTER_OFFER, NOW, price_offer=450)
        with pytest.raises(NotParticipantError):
            sm.accept("buyer-1", "NEGO-X", NOW)

    def test_check_can_accept_does_not_mutate(self, sm: NegotiationStateMachine) -> None:
        sm.post_message("buyer-1", MessageType.PRICE_OFFER, NOW, price_offer=400)
        assert sm.check_can_accept("seller-1") == 400
        assert sm.state == NegotiationStatus.ACTIVE

    def test_no_messages_after_accept(self, sm: NegotiationStateMachine) -> None:
        sm.post_message("buyer-1", MessageType.PRICE_OFFER, NOW, price_offer=400)
        sm.accept("seller-1", "NEGO-X", NOW)
        with pytest.raises(InvalidStateError):
            sm.post_message("buyer-1", MessageType.FREE_TEXT, NOW, content="thanks")


class TestReject:
    @pytest.mark.parametrize("sender", ["buyer-1", "seller-1"])
    def test_either_party_rejects(self, sm: NegotiationStateMachine, sender: str) -> None:
        msg = sm.reject(sender, NOW, "Too expensive")
        assert sm.state == NegotiationStatus.REJECTED
        assert sm.is_terminal
        assert msg.content == "Offer rejected. Reason: Too expensive"

    def test_reject_without_reason(self, sm: NegotiationStateMachine) -> None:
        assert sm.reject("seller-1", NOW).content == "Offer rejected."

    def test_reason_too_long(self, sm: NegotiationStateMachine) -> None:
        with pytest.raises(InvalidMessageError):
            sm.reject("seller-1", NOW, "x" * 201)

    def test_stranger_cannot_reject(self, sm: NegotiationStateMachine) -> None:
        with pytest.raises(NotParticipantError):
            sm.reject("stranger", NOW)

    def test_terminal_after_reject(self, sm: NegotiationStateMachine) -> None:
        sm.reject("buyer-1", NOW)
        assert sm.get_valid_events() == []
        with pytest.raises(InvalidStateError):
            sm.accept("seller-1", "NEGO-X", NOW)
        with pytest.raises(InvalidStateError):
            sm.reject("seller-1", NOW)


class TestExpire:
    def test_expire_after_deadline(self, sm: NegotiationStateMachine) -> None:
        sm.expire(NOW + timedelta(hours=73))
        assert sm.state == NegotiationStatus.EXPIRED

    def test_expire_before_deadline_refused(self, sm: NegotiationStateMachine) -> None:
        with pytest.raises(InvalidStateError):
            sm.expire(NOW + timedelta(hours=71))
        assert sm.state == NegotiationStatus.ACTIVE

    def test_no_messages_after_expiry(self, sm: NegotiationStateMachine) -> None:
        sm.expire(NOW + timedelta(hours=73))
        with pytest.raises(InvalidStateError):
            sm.post_message("buyer-1", MessageType.FREE_TEXT, NOW, content="hello?")


class TestComplete:
    def test_complete_from_accepted(self, sm: NegotiationStateMachine) -> None:
        sm.post_message("buyer-1", MessageType.PRICE_OFFER, NOW, price_offer=450)
        sm.accept("seller-1", "NEGO-X", NOW)
        sm.complete(NOW)
        assert sm.state == NegotiationStatus.COMPLETED
        assert sm.negotiation.final_price == 450

    def test_complete_requires_accepted(self, sm: NegotiationStateMachine) -> None:
        with pytest.raises(InvalidStateError):
            sm.complete(NOW)
