"""Domain types, models, and errors for the negotiation engine."""

from haggle.domain.errors import (
    AlreadyUsedError,
    BelowMinimumPurchaseError,
    CodeNotFoundError,
    DiscountError,
    DuplicateActiveNegotiationError,
    ExpiredError,
    HaggleError,
    InvalidMessageError,
    InvalidStateError,
    ItemNotFoundError,
    NegotiationNotFoundError,
    NoPendingOfferError,
    NotEligibleError,
    NotOwnerError,
    NotParticipantError,
    PriceOutOfBoundsError,
    RateLimitExceededError,
    SelfNegotiationError,
    VersionConflictError,
    WrongItemError,
)
from haggle.domain.models import (
    CodeListing,
    DiscountCredential,
    Message,
    Negotiation,
    ValidationResult,
    WelcomeStatus,
)
from haggle.domain.types import (
    CredentialKind,
    CredentialStatus,
    MessageType,
    NegotiationStatus,
    RedemptionOutcome,
)

__all__ = [
    "AlreadyUsedError",
    "BelowMinimumPurchaseError",
    "CodeListing",
    "CodeNotFoundError",
    "CredentialKind",
    "CredentialStatus",
    "DiscountCredential",
    "DiscountError",
    "DuplicateActiveNegotiationError",
    "ExpiredError",
    "HaggleError",
    "InvalidMessageError",
    "InvalidStateError",
    "ItemNotFoundError",
    "Message",
    "MessageType",
    "Negotiation",
    "NegotiationNotFoundError",
    "NegotiationStatus",
    "NoPendingOfferError",
    "NotEligibleError",
    "NotOwnerError",
    "NotParticipantError",
    "PriceOutOfBoundsError",
    "RateLimitExceededError",
    "RedemptionOutcome",
    "SelfNegotiationError",
    "ValidationResult",
    "VersionConflictError",
    "WelcomeStatus",
    "WrongItemError",
]
