"""Request and response bodies for the HTTP API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from haggle.domain.models import MAX_MESSAGE_LENGTH, DiscountCredential, Negotiation
from haggle.domain.types import MessageType
from haggle.state_machine.machine import MAX_REASON_LENGTH


class StartNegotiationRequest(BaseModel):
    item_id: str = Field(min_length=1)
    message: str | None = Field(default=None, max_length=MAX_MESSAGE_LENGTH)
    template_id: str | None = None
    price_offer: int | None = None


class PostMessageRequest(BaseModel):
    type: MessageType
    content: str | None = Field(default=None, max_length=MAX_MESSAGE_LENGTH)
    price_offer: int | None = None
    template_id: str | None = None


class RejectRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=MAX_REASON_LENGTH)


class CompleteRequest(BaseModel):
    payment_id: str = Field(min_length=1)


class ValidateCodeRequest(BaseModel):
    code: str = Field(min_length=1)
    item_id: str = Field(min_length=1)


class RedeemCodeRequest(BaseModel):
    """Sent by the payment pipeline after the payment succeeded."""

    code: str = Field(min_length=1)
    payment_id: str = Field(min_length=1)
    buyer_id: str | None = None


class RecordPurchaseRequest(BaseModel):
    """Sent by the payment pipeline for every completed purchase."""

    payment_id: str = Field(min_length=1)
    buyer_id: str = Field(min_length=1)
    item_id: str | None = None
    amount: int | None = None


class AcceptResponse(BaseModel):
    negotiation: Negotiation
    discount_code: DiscountCredential


class TemplateResponse(BaseModel):
    id: str
    content: str
