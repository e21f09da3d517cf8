"""SQLite schema for negotiations, their message log, credentials, and purchases.

Uniqueness rules that guard against concurrent actors live in the schema
itself (partial unique indexes) so they hold even when two requests race
past the application-level checks.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

# Seconds a writer waits on a locked database before OperationalError
DEFAULT_BUSY_TIMEOUT = 5.0


def connect_db(
    db_path: Path | str,
    timeout: float = DEFAULT_BUSY_TIMEOUT,
    ensure_schema: bool = True,
) -> sqlite3.Connection:
    """Open a connection with WAL mode, foreign keys, and the full schema.

    Args:
        db_path: Path to the SQLite database file (or ``":memory:"``).
        timeout: Busy timeout in seconds for lock contention.
        ensure_schema: Run ``init_schema``.  Per-request connections to a
            database initialized at startup pass False.

    Returns:
        An open sqlite3.Connection usable from any thread.
    """
    conn = sqlite3.connect(str(db_path), timeout=timeout, check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    if ensure_schema:
        init_schema(conn)
    return conn


def init_schema(conn: sqlite3.Connection) -> None:
    """Create all tables, indexes, and triggers if they do not already exist.

    Also switches the connection to ``sqlite3.Row`` rows, which every store
    relies on for column access by name.

    Args:
        conn: An open sqlite3.Connection (WAL mode recommended).
    """
    conn.row_factory = sqlite3.Row

    conn.execute("""
        CREATE TABLE IF NOT EXISTS negotiations (
            id TEXT PRIMARY KEY,
            item_id TEXT NOT NULL,
            buyer_id TEXT NOT NULL,
            seller_id TEXT NOT NULL,
            original_price INTEGER NOT NULL CHECK (original_price > 0),
            minimum_price INTEGER NOT NULL,
            current_offer INTEGER,
            final_price INTEGER,
            status TEXT NOT NULL DEFAULT 'active',
            discount_credential_id TEXT,
            version INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            last_activity_at TEXT NOT NULL,
            expires_at TEXT NOT NULL,
            CHECK (current_offer IS NULL
                   OR (current_offer >= minimum_price AND current_offer <= original_price))
        )
    """)
    conn.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS uq_negotiation_active_pair "
        "ON negotiations (buyer_id, item_id) WHERE status = 'active'"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_negotiation_status_expiry "
        "ON negotiations (status, expires_at)"
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_negotiation_buyer ON negotiations (buyer_id)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_negotiation_seller ON negotiations (seller_id)")

    conn.execute("""
        CREATE TABLE IF NOT EXISTS negotiation_messages (
            negotiation_id TEXT NOT NULL REFERENCES negotiations (id),
            seq INTEGER NOT NULL,
            id TEXT NOT NULL UNIQUE,
            sender_id TEXT NOT NULL,
            type TEXT NOT NULL,
            content TEXT NOT NULL,
            price_offer INTEGER,
            template_id TEXT,
            is_filtered INTEGER NOT NULL DEFAULT 0,
            filtered_reason TEXT,
            timestamp TEXT NOT NULL,
            PRIMARY KEY (negotiation_id, seq)
        )
    """)
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_message_sender_time "
        "ON negotiation_messages (negotiation_id, sender_id, timestamp)"
    )
    conn.execute("""
        CREATE TRIGGER IF NOT EXISTS trg_messages_no_update
        BEFORE UPDATE ON negotiation_messages
        BEGIN
            SELECT RAISE(ABORT, 'negotiation messages are append-only');
        END
    """)
    conn.execute("""
        CREATE TRIGGER IF NOT EXISTS trg_messages_no_delete
        BEFORE DELETE ON negotiation_messages
        BEGIN
            SELECT RAISE(ABORT, 'negotiation messages are append-only');
        END
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS discount_credentials (
            code TEXT PRIMARY KEY,
            kind TEXT NOT NULL,
            buyer_id TEXT NOT NULL,
            scope_item_id TEXT,
            negotiation_id TEXT UNIQUE,
            discount_amount INTEGER,
            discount_percent INTEGER,
            min_purchase_amount INTEGER,
            max_discount_cap INTEGER,
            status TEXT NOT NULL DEFAULT 'unused',
            used_by_payment_id TEXT,
            used_at TEXT,
            expires_at TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
    """)
    conn.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS uq_welcome_per_buyer "
        "ON discount_credentials (buyer_id) WHERE kind = 'welcome'"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_credential_buyer ON discount_credentials (buyer_id)"
    )

    conn.execute("""
        CREATE TABLE IF NOT EXISTS purchases (
            payment_id TEXT PRIMARY KEY,
            buyer_id TEXT NOT NULL,
            item_id TEXT,
            amount INTEGER,
            completed_at TEXT NOT NULL
        )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_purchase_buyer ON purchases (buyer_id)")

    conn.commit()


def close_db(conn: sqlite3.Connection) -> None:
    """Close the database connection.

    Args:
        conn: The database connection to close.
    """
    conn.close()
