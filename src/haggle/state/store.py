"""SQLite-backed negotiation store with optimistic concurrency.

Every mutation is a conditional ``UPDATE ... WHERE version = ?``: a writer
that read a stale snapshot changes zero rows and gets
:class:`VersionConflictError` instead of silently overwriting the winner.
Methods without a ``save_``/``create`` prefix do not commit, so callers can
combine them with other writes in one transaction.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import TYPE_CHECKING

from haggle.domain.errors import (
    DuplicateActiveNegotiationError,
    NegotiationNotFoundError,
    VersionConflictError,
)
from haggle.domain.models import Message, Negotiation
from haggle.domain.types import NegotiationStatus
from haggle.state.serializers import from_db_time, to_db_time

if TYPE_CHECKING:
    from haggle.messaging.log import MessageLog


class NegotiationStore:
    """Persist and retrieve negotiations together with their message logs."""

    def __init__(self, conn: sqlite3.Connection, log: MessageLog | None = None) -> None:
        """Initialize with an open database connection.

        Args:
            conn: An open sqlite3.Connection whose database already has the
                  schema from ``init_schema``.
            log: Message log sharing *conn*; created on demand if omitted.
        """
        if log is None:
            from haggle.messaging.log import MessageLog

            log = MessageLog(conn)
        self._conn = conn
        self._log = log

    @property
    def log(self) -> MessageLog:
        """Return the message log this store writes through."""
        return self._log

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def insert(self, negotiation: Negotiation) -> None:
        """Insert a new negotiation and its initial messages (no commit).

        Raises:
            DuplicateActiveNegotiationError: If the buyer already has an
                active negotiation on the same item.
        """
        try:
            self._conn.execute(
                """
                INSERT INTO negotiations (
                    id, item_id, buyer_id, seller_id, original_price,
                    minimum_price, current_offer, final_price, status,
                    discount_credential_id, version, created_at,
                    last_activity_at, expires_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    negotiation.id,
                    negotiation.item_id,
                    negotiation.buyer_id,
                    negotiation.seller_id,
                    negotiation.original_price,
                    negotiation.minimum_price,
                    negotiation.current_offer,
                    negotiation.final_price,
                    negotiation.status.value,
                    negotiation.discount_credential_id,
                    negotiation.version,
                    to_db_time(negotiation.created_at),
                    to_db_time(negotiation.last_activity_at),
                    to_db_time(negotiation.expires_at),
                ),
            )
        except sqlite3.IntegrityError as exc:
            if "negotiations.buyer_id" in str(exc):
                raise DuplicateActiveNegotiationError(
                    negotiation.buyer_id, negotiation.item_id
                ) from exc
            raise

        for message in negotiation.messages:
            self._log.insert(message)

    def create(self, negotiation: Negotiation) -> Negotiation:
        """Insert *negotiation* in its own transaction and return it reloaded."""
        with self._conn:
            self.insert(negotiation)
        return self.get(negotiation.id)

    def update(
        self,
        negotiation: Negotiation,
        expected_version: int,
        new_messages: list[Message] | None = None,
    ) -> list[Message]:
        """Conditionally write *negotiation* and append *new_messages* (no commit).

        On success ``negotiation.version`` is advanced to match the row.

        Returns:
            *new_messages* as stored, with their sequence numbers.

        Raises:
            VersionConflictError: If the stored version is not
                *expected_version* (another writer got there first).
        """
        cursor = self._conn.execute(
            """
            UPDATE negotiations SET
                current_offer = ?,
                final_price = ?,
                status = ?,
                discount_credential_id = ?,
                last_activity_at = ?,
                version = version + 1
            WHERE id = ? AND version = ?
            """,
            (
                negotiation.current_offer,
                negotiation.final_price,
                negotiation.status.value,
                negotiation.discount_credential_id,
                to_db_time(negotiation.last_activity_at),
                negotiation.id,
                expected_version,
            ),
        )
        if cursor.rowcount != 1:
            raise VersionConflictError(negotiation.id, expected_version)
        negotiation.version = expected_version + 1

        return [
            message.model_copy(update={"seq": self._log.insert(message)})
            for message in new_messages or []
        ]

    def save_transition(
        self,
        negotiation: Negotiation,
        expected_version: int,
        new_messages: list[Message] | None = None,
    ) -> list[Message]:
        """Run :meth:`update` in its own transaction (rolled back on conflict)."""
        with self._conn:
            return self.update(negotiation, expected_version, new_messages)

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get(self, negotiation_id: str) -> Negotiation:
        """Load a negotiation with its full message log.

        Raises:
            NegotiationNotFoundError: If no such negotiation exists.
        """
        row = self._conn.execute(
            "SELECT * FROM negotiations WHERE id = ?", (negotiation_id,)
        ).fetchone()
        if row is None:
            raise NegotiationNotFoundError(negotiation_id)
        return self._row_to_negotiation(row)

    def find_active(self, buyer_id: str, item_id: str) -> Negotiation | None:
        """Return the buyer's active negotiation on *item_id*, if any."""
        row = self._conn.execute(
            "SELECT * FROM negotiations WHERE buyer_id = ? AND item_id = ? AND status = ?",
            (buyer_id, item_id, NegotiationStatus.ACTIVE.value),
        ).fetchone()
        return self._row_to_negotiation(row) if row else None

    def list_for_user(
        self,
        user_id: str,
        status: NegotiationStatus | None = None,
        limit: int = 50,
    ) -> list[Negotiation]:
        """List negotiations where *user_id* is buyer or seller, newest activity first."""
        conditions = ["(buyer_id = ? OR seller_id = ?)"]
        params: list[str | int] = [user_id, user_id]
        if status is not None:
            conditions.append("status = ?")
            params.append(status.value)
        params.append(limit)

        rows = self._conn.execute(
            f"SELECT * FROM negotiations WHERE {' AND '.join(conditions)} "
            "ORDER BY last_activity_at DESC LIMIT ?",
            params,
        ).fetchall()
        return [self._row_to_negotiation(row) for row in rows]

    def list_expirable_ids(self, now: datetime) -> list[str]:
        """Return ids of active negotiations whose deadline is before *now*."""
        rows = self._conn.execute(
            "SELECT id FROM negotiations WHERE status = ? AND expires_at < ? ORDER BY expires_at",
            (NegotiationStatus.ACTIVE.value, to_db_time(now)),
        ).fetchall()
        return [row["id"] for row in rows]

    def count_by_status(self) -> dict[str, int]:
        """Return the number of negotiations in each status."""
        rows = self._conn.execute(
            "SELECT status, COUNT(*) AS n FROM negotiations GROUP BY status"
        ).fetchall()
        return {row["status"]: int(row["n"]) for row in rows}

    def _row_to_negotiation(self, row: sqlite3.Row) -> Negotiation:
        return Negotiation(
            id=row["id"],
            item_id=row["item_id"],
            buyer_id=row["buyer_id"],
            seller_id=row["seller_id"],
            original_price=row["original_price"],
            minimum_price=row["minimum_price"],
            current_offer=row["current_offer"],
            final_price=row["final_price"],
            status=NegotiationStatus(row["status"]),
            messages=self._log.messages_for(row["id"]),
            discount_credential_id=row["discount_credential_id"],
            created_at=from_db_time(row["created_at"]),
            last_activity_at=from_db_time(row["last_activity_at"]),
            expires_at=from_db_time(row["expires_at"]),
            version=row["version"],
        )
