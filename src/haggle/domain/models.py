"""Pydantic v2 models for negotiations, messages, and discount credentials."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from haggle.domain.types import (
    CredentialKind,
    CredentialStatus,
    MessageType,
    NegotiationStatus,
    is_price_message,
)

MAX_MESSAGE_LENGTH = 500


class Message(BaseModel):
    """A single immutable entry in a negotiation's message log.

    ``seq`` is assigned by the log on append; messages built in memory before
    persistence carry ``seq=None``.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    negotiation_id: str
    sender_id: str
    type: MessageType
    content: str = Field(max_length=MAX_MESSAGE_LENGTH)
    price_offer: int | None = None
    template_id: str | None = None
    is_filtered: bool = False
    filtered_reason: str | None = None
    timestamp: datetime
    seq: int | None = None

    @model_validator(mode="after")
    def price_only_on_price_messages(self) -> Message:
        """Ensure ``price_offer`` is present exactly for price-bearing types."""
        if is_price_message(self.type):
            if self.price_offer is None:
                raise ValueError(f"{self.type} messages require price_offer")
            if self.price_offer < 0:
                raise ValueError("price_offer must not be negative")
        elif self.price_offer is not None:
            raise ValueError(f"{self.type} messages must not carry price_offer")
        return self


class Negotiation(BaseModel):
    """A bounded buyer/seller price discussion over one catalog item.

    Mutable: the state machine updates it in place and the store persists it
    with a conditional write on ``version``.  Invariants are checked whenever
    an instance is constructed, which includes every load from storage.
    """

    id: str
    item_id: str
    buyer_id: str
    seller_id: str
    original_price: int
    minimum_price: int
    current_offer: int | None = None
    final_price: int | None = None
    status: NegotiationStatus = NegotiationStatus.ACTIVE
    messages: list[Message] = Field(default_factory=list)
    discount_credential_id: str | None = None
    created_at: datetime
    last_activity_at: datetime
    expires_at: datetime
    version: int = 0

    @field_validator("original_price")
    @classmethod
    def original_price_must_be_positive(cls, v: int) -> int:
        """Ensure the list price is a positive integer."""
        if v <= 0:
            raise ValueError("original_price must be positive")
        return v

    @model_validator(mode="after")
    def offer_within_bounds(self) -> Negotiation:
        """Ensure ``minimum_price <= current_offer <= original_price``."""
        if self.minimum_price > self.original_price:
            raise ValueError("minimum_price must not exceed original_price")
        if self.current_offer is not None and not (
            self.minimum_price <= self.current_offer <= self.original_price
        ):
            raise ValueError(
                f"current_offer ({self.current_offer}) outside "
                f"[{self.minimum_price}, {self.original_price}]"
            )
        return self

    @model_validator(mode="after")
    def final_price_matches_status(self) -> Negotiation:
        """Ensure ``final_price`` is set iff the negotiation was accepted."""
        settled = self.status in (NegotiationStatus.ACCEPTED, NegotiationStatus.COMPLETED)
        if settled != (self.final_price is not None):
            raise ValueError(f"final_price must be set iff status is accepted/completed, got {self.status}")
        return self

    def is_participant(self, user_id: str) -> bool:
        """Return True if *user_id* is the buyer or the seller."""
        return user_id in (self.buyer_id, self.seller_id)

    def is_past_expiry(self, now: datetime) -> bool:
        """Return True if the hard wall-clock expiry has passed."""
        return now > self.expires_at


class DiscountCredential(BaseModel):
    """A single-use discount authorization bound to a buyer.

    Negotiated credentials store an absolute ``discount_amount`` and are bound
    to one item; welcome credentials store a percent with a cap and a minimum
    purchase amount and apply to any item.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    kind: CredentialKind
    buyer_id: str
    scope_item_id: str | None = None
    negotiation_id: str | None = None
    discount_amount: int | None = None
    discount_percent: int | None = None
    min_purchase_amount: int | None = None
    max_discount_cap: int | None = None
    status: CredentialStatus = CredentialStatus.UNUSED
    used_by_payment_id: str | None = None
    used_at: datetime | None = None
    expires_at: datetime
    created_at: datetime

    @model_validator(mode="after")
    def constraints_match_kind(self) -> DiscountCredential:
        """Ensure each kind carries the fields it is evaluated with."""
        if self.kind == CredentialKind.NEGOTIATED:
            if self.discount_amount is None or self.discount_amount < 0:
                raise ValueError("negotiated credentials need a non-negative discount_amount")
            if self.scope_item_id is None or self.negotiation_id is None:
                raise ValueError("negotiated credentials must be bound to an item and negotiation")
        else:
            if self.discount_percent is None or not 0 <= self.discount_percent <= 100:
                raise ValueError("welcome credentials need discount_percent in [0, 100]")
            if self.max_discount_cap is None or self.min_purchase_amount is None:
                raise ValueError("welcome credentials need max_discount_cap and min_purchase_amount")
        return self

    def is_valid_at(self, now: datetime) -> bool:
        """Return True if the credential is unused and not yet expired."""
        return self.status == CredentialStatus.UNUSED and now <= self.expires_at


class ValidationResult(BaseModel):
    """Outcome of validating a code against a buyer and item.

    When ``valid`` is False only ``reason`` (a taxonomy code) and ``code`` are
    meaningful.
    """

    model_config = ConfigDict(frozen=True)

    valid: bool
    code: str
    reason: str | None = None
    kind: CredentialKind | None = None
    discount_amount: int | None = None
    final_price: int | None = None
    original_price: int | None = None
    expires_at: datetime | None = None

    @classmethod
    def invalid(cls, code: str, reason: str) -> ValidationResult:
        """Build a failed result carrying only the reason."""
        return cls(valid=False, code=code, reason=reason)


class CodeListing(BaseModel):
    """A buyer's credential together with its usability right now."""

    model_config = ConfigDict(frozen=True)

    credential: DiscountCredential
    is_valid: bool


class WelcomeStatus(BaseModel):
    """Whether a buyer holds, or could claim, the one-time welcome code."""

    model_config = ConfigDict(frozen=True)

    buyer_id: str
    has_code: bool
    eligible: bool
    credential: DiscountCredential | None = None
    is_valid: bool = False
    days_until_expiry: int | None = None
