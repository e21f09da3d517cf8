"""Domain-specific exception classes for the negotiation and discount engine.

Every business outcome has a stable ``code`` string so the HTTP layer and the
validation results can report it without inspecting the exception type.
"""

from __future__ import annotations

from haggle.domain.types import NegotiationStatus


class HaggleError(Exception):
    """Base class for all expected business errors."""

    code: str = "HaggleError"


# ---------------------------------------------------------------------------
# Negotiation errors
# ---------------------------------------------------------------------------


class NegotiationNotFoundError(HaggleError):
    """Raised when a negotiation id does not exist."""

    code = "NegotiationNotFound"

    def __init__(self, negotiation_id: str) -> None:
        self.negotiation_id = negotiation_id
        super().__init__(f"Negotiation '{negotiation_id}' not found")


class InvalidStateError(HaggleError):
    """Raised when an action is not permitted in the current lifecycle state.

    Attributes:
        current_status: The status the negotiation was in.
        event: The event that was rejected.
    """

    code = "InvalidState"

    def __init__(self, current_status: NegotiationStatus, event: str) -> None:
        self.current_status = current_status
        self.event = event
        super().__init__(f"Cannot apply event '{event}' in state '{current_status}'")


class PriceOutOfBoundsError(HaggleError):
    """Raised when an offer falls below the floor or above the list price."""

    code = "PriceOutOfBounds"

    def __init__(self, price: int, minimum_price: int, original_price: int) -> None:
        self.price = price
        self.minimum_price = minimum_price
        self.original_price = original_price
        super().__init__(
            f"Offer {price} must be between {minimum_price} and {original_price}"
        )


class DuplicateActiveNegotiationError(HaggleError):
    """Raised when the buyer already has an active negotiation on the item."""

    code = "DuplicateActiveNegotiation"

    def __init__(self, buyer_id: str, item_id: str) -> None:
        self.buyer_id = buyer_id
        self.item_id = item_id
        super().__init__(
            f"Buyer '{buyer_id}' already has an active negotiation for item '{item_id}'"
        )


class NoPendingOfferError(HaggleError):
    """Raised when accepting a negotiation that has no offer on the table."""

    code = "NoPendingOffer"

    def __init__(self, negotiation_id: str) -> None:
        self.negotiation_id = negotiation_id
        super().__init__(f"Negotiation '{negotiation_id}' has no offer to accept")


class VersionConflictError(HaggleError):
    """Raised when a conditional write loses an optimistic-concurrency race."""

    code = "VersionConflict"

    def __init__(self, negotiation_id: str, expected_version: int) -> None:
        self.negotiation_id = negotiation_id
        self.expected_version = expected_version
        super().__init__(
            f"Negotiation '{negotiation_id}' changed since version {expected_version}"
        )


class NotParticipantError(HaggleError):
    """Raised when a user acts on a negotiation without the required role."""

    code = "NotParticipant"

    def __init__(self, user_id: str, negotiation_id: str, action: str) -> None:
        self.user_id = user_id
        self.negotiation_id = negotiation_id
        self.action = action
        super().__init__(
            f"User '{user_id}' may not {action} on negotiation '{negotiation_id}'"
        )


class SelfNegotiationError(HaggleError):
    """Raised when a seller tries to negotiate on their own item."""

    code = "SelfNegotiation"

    def __init__(self, item_id: str) -> None:
        self.item_id = item_id
        super().__init__(f"Cannot negotiate on your own item '{item_id}'")


class ItemNotFoundError(HaggleError):
    """Raised when the catalog does not know an item."""

    code = "ItemNotFound"

    def __init__(self, item_id: str) -> None:
        self.item_id = item_id
        super().__init__(f"Item '{item_id}' not found")


class RateLimitExceededError(HaggleError):
    """Raised when a sender posts too many messages within an hour."""

    code = "RateLimitExceeded"

    def __init__(self, sender_id: str, limit: int) -> None:
        self.sender_id = sender_id
        self.limit = limit
        super().__init__(
            f"Rate limit exceeded: at most {limit} messages per hour. "
            "Please wait before sending another message."
        )


class InvalidMessageError(HaggleError):
    """Raised when a message is malformed (missing content, unknown template)."""

    code = "InvalidMessage"


# ---------------------------------------------------------------------------
# Discount errors
# ---------------------------------------------------------------------------


class DiscountError(HaggleError):
    """Base class for discount validation and redemption failures."""

    def __init__(self, code_value: str, message: str | None = None) -> None:
        self.code_value = code_value
        super().__init__(message or f"Discount code '{code_value}' rejected: {self.code}")


class CodeNotFoundError(DiscountError):
    code = "CodeNotFound"


class AlreadyUsedError(DiscountError):
    code = "AlreadyUsed"


class ExpiredError(DiscountError):
    code = "Expired"


class NotOwnerError(DiscountError):
    code = "NotOwner"


class WrongItemError(DiscountError):
    code = "WrongItem"


class BelowMinimumPurchaseError(DiscountError):
    code = "BelowMinimumPurchase"


class NotEligibleError(HaggleError):
    """Raised when a buyer cannot claim a welcome code.

    Attributes:
        buyer_id: The buyer who attempted the claim.
        reason: ``already_has_code`` or ``already_purchased``.
    """

    code = "NotEligible"

    def __init__(self, buyer_id: str, reason: str) -> None:
        self.buyer_id = buyer_id
        self.reason = reason
        super().__init__(f"Buyer '{buyer_id}' is not eligible for a welcome code ({reason})")


DISCOUNT_ERRORS: dict[str, type[DiscountError]] = {
    cls.code: cls
    for cls in (
        CodeNotFoundError,
        AlreadyUsedError,
        ExpiredError,
        NotOwnerError,
        WrongItemError,
        BelowMinimumPurchaseError,
    )
}
