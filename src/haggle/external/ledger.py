"""Purchase ledger interface used for welcome-code eligibility.

The engine never owns purchase history; it only asks whether a buyer has
ever completed a purchase.  ``SQLitePurchaseLedger`` is the default
implementation, fed by the payment pipeline through ``record_purchase``.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Protocol

from haggle.state.serializers import to_db_time, utc_now


class PurchaseLedger(Protocol):
    """Read-only view of completed purchases across the platform."""

    def has_completed_purchase(self, buyer_id: str) -> bool:
        """Return True if *buyer_id* has at least one completed purchase."""
        ...


class SQLitePurchaseLedger:
    """Purchase ledger stored in the ``purchases`` table."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def has_completed_purchase(self, buyer_id: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM purchases WHERE buyer_id = ? LIMIT 1", (buyer_id,)
        ).fetchone()
        return row is not None

    def record_purchase(
        self,
        payment_id: str,
        buyer_id: str,
        item_id: str | None = None,
        amount: int | None = None,
        completed_at: datetime | None = None,
    ) -> bool:
        """Record a confirmed payment.  Idempotent per *payment_id*.

        Returns:
            True if a new row was written, False if the payment was known.
        """
        with self._conn:
            cursor = self._conn.execute(
                "INSERT OR IGNORE INTO purchases "
                "(payment_id, buyer_id, item_id, amount, completed_at) VALUES (?, ?, ?, ?, ?)",
                (payment_id, buyer_id, item_id, amount, to_db_time(completed_at or utc_now())),
            )
        return cursor.rowcount == 1
