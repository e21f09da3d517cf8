"""Domain enumerations for negotiations, messages, and discount credentials."""

from enum import StrEnum


class NegotiationStatus(StrEnum):
    """States in the negotiation lifecycle."""

    ACTIVE = "active"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    COMPLETED = "completed"


class MessageType(StrEnum):
    """Kinds of entries in a negotiation's message log."""

    TEMPLATE = "template"
    FREE_TEXT = "free_text"
    PRICE_OFFER = "price_offer"
    COUNTER_OFFER = "counter_offer"
    # Written by the engine itself on accept/reject, never posted by users
    SYSTEM = "system"


class CredentialKind(StrEnum):
    """Origin of a discount credential."""

    NEGOTIATED = "negotiated"
    WELCOME = "welcome"


class CredentialStatus(StrEnum):
    """Redemption state of a discount credential."""

    UNUSED = "unused"
    USED = "used"


class RedemptionOutcome(StrEnum):
    """Result of an atomic ``mark_used`` compare-and-swap."""

    SUCCESS = "success"
    ALREADY_USED = "AlreadyUsed"
    NOT_FOUND = "CodeNotFound"
    EXPIRED = "Expired"


# Message types that carry a price and move ``current_offer``
PRICE_MESSAGE_TYPES: frozenset[MessageType] = frozenset(
    {MessageType.PRICE_OFFER, MessageType.COUNTER_OFFER}
)

# Message types a buyer or seller may post directly
POSTABLE_MESSAGE_TYPES: frozenset[MessageType] = frozenset(
    {
        MessageType.TEMPLATE,
        MessageType.FREE_TEXT,
        MessageType.PRICE_OFFER,
        MessageType.COUNTER_OFFER,
    }
)


def is_price_message(message_type: MessageType) -> bool:
    """Return True if *message_type* carries a price offer."""
    return message_type in PRICE_MESSAGE_TYPES
