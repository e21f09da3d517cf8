"""Append-only, sequence-numbered message log for negotiations.

The log is a dumb ledger: it assigns each message the next sequence number
within its negotiation and never updates or deletes a stored row (schema
triggers reject both).  Price bounds and permissions are enforced by the
state machine before anything reaches this module.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from datetime import datetime

from haggle.domain.models import Message
from haggle.state.serializers import row_to_message, to_db_time

DEFAULT_BATCH_SIZE = 100


class MessageLog:
    """Ordered message storage keyed by negotiation id.

    Usage::

        log = MessageLog(conn)
        seq = log.append(message)
        for msg in log.list_since(negotiation_id, cursor=seq):
            ...
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialize with an open database connection.

        Args:
            conn: An open sqlite3.Connection whose database already has the
                  ``negotiation_messages`` table (see ``init_schema``).
        """
        self._conn = conn

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def insert(self, message: Message) -> int:
        """Insert *message* without committing and return its sequence number.

        The caller owns the surrounding transaction, which lets a message be
        written atomically with the negotiation row it belongs to.
        """
        cursor = self._conn.execute(
            """
            INSERT INTO negotiation_messages (
                negotiation_id, seq, id, sender_id, type, content,
                price_offer, template_id, is_filtered, filtered_reason, timestamp
            ) VALUES (
                ?,
                (SELECT COALESCE(MAX(seq), 0) + 1
                   FROM negotiation_messages WHERE negotiation_id = ?),
                ?, ?, ?, ?, ?, ?, ?, ?, ?
            )
            """,
            (
                message.negotiation_id,
                message.negotiation_id,
                message.id,
                message.sender_id,
                message.type.value,
                message.content,
                message.price_offer,
                message.template_id,
                int(message.is_filtered),
                message.filtered_reason,
                to_db_time(message.timestamp),
            ),
        )
        row = self._conn.execute(
            "SELECT seq FROM negotiation_messages WHERE rowid = ?",
            (cursor.lastrowid,),
        ).fetchone()
        return int(row["seq"])

    def append(self, message: Message) -> int:
        """Append *message* in its own transaction and return its sequence number."""
        with self._conn:
            return self.insert(message)

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def list_since(
        self,
        negotiation_id: str,
        cursor: int = 0,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> Iterator[Message]:
        """Lazily yield messages with ``seq > cursor`` in sequence order.

        Rows are fetched in batches, so a long conversation is never loaded
        all at once.  The sequence is finite: it ends at the last message
        stored when the final batch is read.  Restart from any ``msg.seq``.

        Args:
            negotiation_id: The negotiation whose log to read.
            cursor: Last sequence number already seen (0 reads from start).
            batch_size: Rows fetched per query.
        """
        last_seen = cursor
        while True:
            rows = self._conn.execute(
                "SELECT * FROM negotiation_messages "
                "WHERE negotiation_id = ? AND seq > ? ORDER BY seq LIMIT ?",
                (negotiation_id, last_seen, batch_size),
            ).fetchall()
            for row in rows:
                message = row_to_message(row)
                last_seen = message.seq or last_seen
                yield message
            if len(rows) < batch_size:
                return

    def messages_for(self, negotiation_id: str) -> list[Message]:
        """Return the full ordered log for a negotiation."""
        return list(self.list_since(negotiation_id))

    def count_since(self, negotiation_id: str, sender_id: str, since: datetime) -> int:
        """Count messages by *sender_id* in a negotiation at or after *since*."""
        row = self._conn.execute(
            "SELECT COUNT(*) AS n FROM negotiation_messages "
            "WHERE negotiation_id = ? AND sender_id = ? AND timestamp >= ?",
            (negotiation_id, sender_id, to_db_time(since)),
        ).fetchone()
        return int(row["n"])
