"""HTTP endpoints for negotiations and discount codes.

The caller's identity arrives already verified in the ``X-User-ID`` header.
Handlers are plain ``def`` functions, so FastAPI runs them in its thread
pool; each request gets its own database connection, opened by
:func:`get_connection` and closed when the response is sent.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Header, Query, Request, status

from haggle.api.schemas import (
    AcceptResponse,
    CompleteRequest,
    PostMessageRequest,
    RecordPurchaseRequest,
    RedeemCodeRequest,
    RejectRequest,
    StartNegotiationRequest,
    TemplateResponse,
    ValidateCodeRequest,
)
from haggle.domain.models import (
    CodeListing,
    DiscountCredential,
    Message,
    Negotiation,
    ValidationResult,
    WelcomeStatus,
)
from haggle.domain.types import NegotiationStatus
from haggle.external.ledger import SQLitePurchaseLedger
from haggle.messaging.templates import list_templates
from haggle.service.discounts import DiscountService
from haggle.service.negotiations import NegotiationService
from haggle.state.schema import close_db

logger = structlog.get_logger()

router = APIRouter()


def get_connection(request: Request) -> Iterator[sqlite3.Connection]:
    """Yield a fresh connection for the duration of one request."""
    conn: sqlite3.Connection = request.app.state.services["connect"]()
    try:
        yield conn
    finally:
        close_db(conn)


Connection = Annotated[sqlite3.Connection, Depends(get_connection)]
UserId = Annotated[str, Header(alias="X-User-ID", min_length=1)]


def get_negotiation_service(request: Request, conn: Connection) -> NegotiationService:
    services: dict[str, Any] = request.app.state.services
    return NegotiationService(
        conn,
        services["catalog"],
        services["code_salt"],
        policy=services["policy"],
        clock=services["clock"],
    )


def get_discount_service(request: Request, conn: Connection) -> DiscountService:
    services: dict[str, Any] = request.app.state.services
    return DiscountService(
        conn,
        services["catalog"],
        services["code_salt"],
        welcome_terms=services["welcome_terms"],
        clock=services["clock"],
    )


Negotiations = Annotated[NegotiationService, Depends(get_negotiation_service)]
Discounts = Annotated[DiscountService, Depends(get_discount_service)]


# ---------------------------------------------------------------------------
# Negotiations
# ---------------------------------------------------------------------------


@router.post("/negotiations", status_code=status.HTTP_201_CREATED)
def start_negotiation(
    body: StartNegotiationRequest, user_id: UserId, service: Negotiations
) -> Negotiation:
    """Open a negotiation as the buyer of ``body.item_id``."""
    return service.start(
        user_id,
        body.item_id,
        message=body.message,
        template_id=body.template_id,
        price_offer=body.price_offer,
    )


@router.get("/negotiations")
def list_my_negotiations(
    user_id: UserId,
    service: Negotiations,
    status_filter: Annotated[NegotiationStatus | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> list[Negotiation]:
    """List the caller's negotiations as buyer or seller."""
    return service.list_mine(user_id, status=status_filter, limit=limit)


@router.get("/negotiations/{negotiation_id}")
def get_negotiation(negotiation_id: str, user_id: UserId, service: Negotiations) -> Negotiation:
    return service.get(negotiation_id, viewer_id=user_id)


@router.get("/negotiations/{negotiation_id}/messages")
def list_messages(
    negotiation_id: str,
    user_id: UserId,
    service: Negotiations,
    cursor: Annotated[int, Query(ge=0)] = 0,
) -> list[Message]:
    """Return messages with a sequence number above *cursor*."""
    return service.messages_since(negotiation_id, user_id, cursor)


@router.post("/negotiations/{negotiation_id}/messages", status_code=status.HTTP_201_CREATED)
def post_message(
    negotiation_id: str, body: PostMessageRequest, user_id: UserId, service: Negotiations
) -> Message:
    return service.post_message(
        negotiation_id,
        user_id,
        body.type,
        content=body.content,
        price_offer=body.price_offer,
        template_id=body.template_id,
    )


@router.post("/negotiations/{negotiation_id}/accept")
def accept_offer(negotiation_id: str, user_id: UserId, service: Negotiations) -> AcceptResponse:
    """Accept the pending offer as the seller and return the minted code."""
    accepted = service.accept(negotiation_id, user_id)
    return AcceptResponse(negotiation=accepted.negotiation, discount_code=accepted.credential)


@router.post("/negotiations/{negotiation_id}/reject")
def reject_offer(
    negotiation_id: str,
    user_id: UserId,
    service: Negotiations,
    body: RejectRequest | None = None,
) -> Negotiation:
    return service.reject(negotiation_id, user_id, body.reason if body else None)


@router.post("/negotiations/{negotiation_id}/complete")
def complete_negotiation(
    negotiation_id: str, body: CompleteRequest, service: Negotiations
) -> Negotiation:
    """Called by the payment pipeline after the negotiated code was redeemed."""
    return service.mark_completed(negotiation_id, body.payment_id)


@router.get("/templates")
def get_templates() -> list[TemplateResponse]:
    return [TemplateResponse(**template) for template in list_templates()]


# ---------------------------------------------------------------------------
# Discount codes
# ---------------------------------------------------------------------------


@router.post("/discounts/validate")
def validate_discount_code(
    body: ValidateCodeRequest, user_id: UserId, service: Discounts
) -> ValidationResult:
    """Preview a code at checkout.  Does not consume it."""
    return service.validate_for_purchase(body.code, user_id, body.item_id)


@router.post("/discounts/redeem")
def redeem_discount_code(body: RedeemCodeRequest, service: Discounts) -> DiscountCredential:
    """Consume a code for a confirmed payment."""
    return service.redeem(body.code, body.payment_id, buyer_id=body.buyer_id)


@router.post("/discounts/welcome", status_code=status.HTTP_201_CREATED)
def claim_welcome_code(user_id: UserId, service: Discounts) -> DiscountCredential:
    return service.claim_welcome(user_id)


@router.get("/discounts/welcome")
def get_welcome_status(user_id: UserId, service: Discounts) -> WelcomeStatus:
    return service.welcome_status(user_id)


@router.get("/discounts/mine")
def list_my_discount_codes(user_id: UserId, service: Discounts) -> list[CodeListing]:
    return service.list_codes(user_id)


# ---------------------------------------------------------------------------
# Purchase ledger feed
# ---------------------------------------------------------------------------


@router.post("/purchases")
def record_purchase(body: RecordPurchaseRequest, conn: Connection) -> dict[str, bool]:
    """Record a completed purchase reported by the payment pipeline."""
    recorded = SQLitePurchaseLedger(conn).record_purchase(
        body.payment_id, body.buyer_id, item_id=body.item_id, amount=body.amount
    )
    logger.info("purchase_recorded", payment_id=body.payment_id, new=recorded)
    return {"recorded": recorded}
