"""Row <-> model conversion helpers for the SQLite stores.

Timestamps are stored as fixed-width UTC ISO-8601 strings with microseconds
so that lexical comparison in SQL matches chronological order.
"""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from typing import Any

from haggle.domain.models import DiscountCredential, Message
from haggle.domain.types import CredentialKind, CredentialStatus, MessageType

DB_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(tz=UTC)


def to_db_time(value: datetime) -> str:
    """Encode an aware datetime as a sortable UTC string.

    Raises:
        ValueError: If *value* is naive.
    """
    if value.tzinfo is None:
        raise ValueError("naive datetimes cannot be stored; attach a timezone")
    return value.astimezone(UTC).strftime(DB_TIME_FORMAT)


def from_db_time(value: str | None) -> datetime | None:
    """Decode a string produced by ``to_db_time`` (``None`` passes through)."""
    if value is None:
        return None
    return datetime.strptime(value, DB_TIME_FORMAT).replace(tzinfo=UTC)


def row_to_message(row: sqlite3.Row | dict[str, Any]) -> Message:
    """Build a :class:`Message` from a ``negotiation_messages`` row."""
    return Message(
        id=row["id"],
        negotiation_id=row["negotiation_id"],
        seq=row["seq"],
        sender_id=row["sender_id"],
        type=MessageType(row["type"]),
        content=row["content"],
        price_offer=row["price_offer"],
        template_id=row["template_id"],
        is_filtered=bool(row["is_filtered"]),
        filtered_reason=row["filtered_reason"],
        timestamp=from_db_time(row["timestamp"]),
    )


def row_to_credential(row: sqlite3.Row | dict[str, Any]) -> DiscountCredential:
    """Build a :class:`DiscountCredential` from a ``discount_credentials`` row."""
    return DiscountCredential(
        code=row["code"],
        kind=CredentialKind(row["kind"]),
        buyer_id=row["buyer_id"],
        scope_item_id=row["scope_item_id"],
        negotiation_id=row["negotiation_id"],
        discount_amount=row["discount_amount"],
        discount_percent=row["discount_percent"],
        min_purchase_amount=row["min_purchase_amount"],
        max_discount_cap=row["max_discount_cap"],
        status=CredentialStatus(row["status"]),
        used_by_payment_id=row["used_by_payment_id"],
        used_at=from_db_time(row["used_at"]),
        expires_at=from_db_time(row["expires_at"]),
        created_at=from_db_time(row["created_at"]),
    )
