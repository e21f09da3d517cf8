"""Operator command-line tool for the haggle engine database.

Subcommands:

- ``sweep``: expire every overdue active negotiation once, then exit.
- ``show-code CODE``: print a discount credential (case-insensitive lookup).
- ``negotiations USER_ID``: list a user's negotiations as buyer or seller.

Output formats: table (default) or JSON.

Usage::

    haggle sweep --db data/haggle.db
    haggle show-code nego-abcdefghjk --format json
    haggle negotiations buyer-1 --status active --limit 20
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from haggle.credentials.store import CredentialStore
from haggle.domain.types import NegotiationStatus
from haggle.external.catalog import StaticCatalog
from haggle.service.negotiations import NegotiationService
from haggle.service.sweeper import sweep_expired
from haggle.state.schema import close_db, connect_db
from haggle.state.store import NegotiationStore

DEFAULT_DB_PATH = "data/haggle.db"


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser with one subparser per command.

    Returns:
        A configured :class:`argparse.ArgumentParser`.
    """
    parser = argparse.ArgumentParser(description="Inspect and maintain the haggle engine database")
    parser.add_argument(
        "--db",
        type=str,
        default=DEFAULT_DB_PATH,
        help=f"Path to the database (default: {DEFAULT_DB_PATH})",
    )
    parser.add_argument(
        "--format",
        type=str,
        choices=["table", "json"],
        default="table",
        dest="output_format",
        help="Output format (default: table)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("sweep", help="Expire overdue active negotiations once")

    show_code = subparsers.add_parser("show-code", help="Show one discount credential")
    show_code.add_argument("code", type=str, help="The discount code")

    negotiations = subparsers.add_parser("negotiations", help="List a user's negotiations")
    negotiations.add_argument("user_id", type=str, help="Buyer or seller id")
    negotiations.add_argument(
        "--status",
        type=str,
        choices=[status.value for status in NegotiationStatus],
        help="Filter by status",
    )
    negotiations.add_argument(
        "--limit",
        type=int,
        default=50,
        help="Maximum results (default: 50)",
    )

    return parser


def format_table(rows: list[dict[str, Any]], columns: list[tuple[str, str, int]]) -> str:
    """Format *rows* as a fixed-width table.

    Args:
        rows: Records to print.
        columns: ``(header, key, width)`` for each column.

    Returns:
        Formatted table string with header row.
    """
    if not rows:
        return "No results found."

    def truncate(value: Any, width: int) -> str:
        s = "" if value is None else str(value)
        if len(s) > width:
            return s[: width - 3] + "..."
        return s

    header_line = "  ".join(header.ljust(width) for header, _, width in columns)
    lines = [header_line, "-" * len(header_line)]
    for row in rows:
        lines.append(
            "  ".join(truncate(row.get(key), width).ljust(width) for _, key, width in columns)
        )
    return "\n".join(lines)


def format_json(payload: Any) -> str:
    """Format *payload* as pretty-printed JSON."""
    return json.dumps(payload, indent=2, default=str)


NEGOTIATION_COLUMNS = [
    ("ID", "id", 32),
    ("Item", "item_id", 15),
    ("Buyer", "buyer_id", 15),
    ("Seller", "seller_id", 15),
    ("Status", "status", 10),
    ("Offer", "current_offer", 8),
    ("Final", "final_price", 8),
    ("Last Activity", "last_activity_at", 25),
]

CODE_COLUMNS = [
    ("Code", "code", 16),
    ("Kind", "kind", 10),
    ("Buyer", "buyer_id", 15),
    ("Item", "scope_item_id", 15),
    ("Amount", "discount_amount", 8),
    ("Percent", "discount_percent", 8),
    ("Status", "status", 8),
    ("Payment", "used_by_payment_id", 15),
    ("Expires", "expires_at", 25),
]


def run_command(args: argparse.Namespace) -> str:
    """Execute the parsed command against the database and return the output."""
    db_path = Path(args.db)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = connect_db(db_path)
    as_json = args.output_format == "json"

    try:
        if args.command == "sweep":
            expired = sweep_expired(NegotiationService(conn, StaticCatalog(), code_salt=""))
            return format_json({"expired": expired}) if as_json else f"Expired {expired} negotiation(s)."

        if args.command == "show-code":
            credential = CredentialStore(conn, code_salt="").lookup(args.code)
            if credential is None:
                return format_json(None) if as_json else "No results found."
            row = credential.model_dump(mode="json")
            return format_json(row) if as_json else format_table([row], CODE_COLUMNS)

        status = NegotiationStatus(args.status) if args.status else None
        negotiations = NegotiationStore(conn).list_for_user(
            args.user_id, status=status, limit=args.limit
        )
        rows = [n.model_dump(mode="json", exclude={"messages"}) for n in negotiations]
        return format_json(rows) if as_json else format_table(rows, NEGOTIATION_COLUMNS)
    finally:
        close_db(conn)


def main(argv: list[str] | None = None) -> None:
    """Parse arguments, run the command, and print the result."""
    parser = build_parser()
    args = parser.parse_args(argv)
    print(run_command(args))


if __name__ == "__main__":
    main()
