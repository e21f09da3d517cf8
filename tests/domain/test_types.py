"""Tests for domain enumerations and message type helpers."""

import pytest

from haggle.domain.types import (
    POSTABLE_MESSAGE_TYPES,
    PRICE_MESSAGE_TYPES,
    CredentialKind,
    CredentialStatus,
    MessageType,
    NegotiationStatus,
    RedemptionOutcome,
    is_price_message,
)


class TestNegotiationStatus:
    """NegotiationStatus values are the stored strings."""

    def test_has_five_statuses(self) -> None:
        assert {s.value for s in NegotiationStatus} == {
            "active",
            "accepted",
            "rejected",
            "expired",
            "completed",
        }

    def test_compares_equal_to_string(self) -> None:
        assert NegotiationStatus.ACTIVE == "active"


class TestMessageType:
    """Price-bearing and postable message types."""

    @pytest.mark.parametrize("message_type", [MessageType.PRICE_OFFER, MessageType.COUNTER_OFFER])
    def test_price_types(self, message_type: MessageType) -> None:
        assert is_price_message(message_type)
        assert message_type in PRICE_MESSAGE_TYPES

    @pytest.mark.parametrize(
        "message_type", [MessageType.TEMPLATE, MessageType.FREE_TEXT, MessageType.SYSTEM]
    )
    def test_non_price_types(self, message_type: MessageType) -> None:
        assert not is_price_message(message_type)

    def test_system_messages_are_not_postable(self) -> None:
        assert MessageType.SYSTEM not in POSTABLE_MESSAGE_TYPES
        assert len(POSTABLE_MESSAGE_TYPES) == 4


class TestCredentialEnums:
    def test_kinds(self) -> None:
        assert {k.value for k in CredentialKind} == {"negotiated", "welcome"}

    def test_statuses(self) -> None:
        assert {s.value for s in CredentialStatus} == {"unused", "used"}

    def test_redemption_outcomes_use_error_codes(self) -> None:
        assert RedemptionOutcome.ALREADY_USED == "AlreadyUsed"
        assert RedemptionOutcome.NOT_FOUND == "CodeNotFound"
        assert RedemptionOutcome.EXPIRED == "Expired"
