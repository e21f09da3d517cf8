"""Tests for the operator CLI."""

from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path

import pytest

from haggle.cli import build_parser, format_table, main, run_command
from haggle.credentials.store import CredentialStore
from haggle.external.catalog import StaticCatalog
from haggle.service.negotiations import NegotiationService
from haggle.state.schema import close_db, connect_db
from haggle.state.serializers import utc_now

SALT = "test-salt"


@pytest.fixture
def seeded_db(db_path: Path, catalog: StaticCatalog) -> Path:
    """Database with one overdue negotiation, one active, and one accepted."""
    conn = connect_db(db_path, ensure_schema=False)
    try:
        past = NegotiationService(conn, catalog, SALT, clock=lambda: utc_now() - timedelta(days=4))
        past.start("buyer-1", "item-1")
        service = NegotiationService(conn, catalog, SALT)
        service.start("buyer-1", "item-big")
        accepted = service.start("buyer-2", "item-1", price_offer=450)
        service.accept(accepted.id, "seller-1")
    finally:
        close_db(conn)
    return db_path


def _run(*argv: str) -> str:
    return run_command(build_parser().parse_args(list(argv)))


class TestParser:
    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_defaults(self) -> None:
        args = build_parser().parse_args(["negotiations", "buyer-1"])
        assert args.db == "data/haggle.db"
        assert args.output_format == "table"
        assert args.limit == 50

    def test_status_choices(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["negotiations", "buyer-1", "--status", "pending"])


class TestFormatTable:
    def test_empty(self) -> None:
        assert format_table([], [("ID", "id", 5)]) == "No results found."

    def test_truncates_long_values(self) -> None:
        table = format_table([{"id": "abcdefghij"}], [("ID", "id", 6)])
        assert table.splitlines()[-1].strip() == "abc..."


class TestCommands:
    def test_sweep(self, seeded_db: Path) -> None:
        assert _run("--db", str(seeded_db), "sweep") == "Expired 1 negotiation(s)."
        assert json.loads(_run("--db", str(seeded_db), "--format", "json", "sweep")) == {
            "expired": 0
        }

    def test_negotiations_json(self, seeded_db: Path) -> None:
        rows = json.loads(_run("--db", str(seeded_db), "--format", "json", "negotiations", "buyer-1"))
        assert {row["item_id"] for row in rows} == {"item-1", "item-big"}
        assert all("messages" not in row for row in rows)

    def test_negotiations_status_filter(self, seeded_db: Path) -> None:
        output = _run("--db", str(seeded_db), "negotiations", "seller-1", "--status", "accepted")
        lines = output.splitlines()
        assert lines[0].startswith("ID")
        assert len(lines) == 3

    def test_show_code(self, seeded_db: Path) -> None:
        conn = connect_db(seeded_db, ensure_schema=False)
        try:
            [credential] = CredentialStore(conn, SALT).list_for_buyer("buyer-2")
        finally:
            close_db(conn)

        row = json.loads(
            _run("--db", str(seeded_db), "--format", "json", "show-code", credential.code.lower())
        )
        assert row["code"] == credential.code
        assert row["discount_amount"] == 50

    def test_show_unknown_code(self, seeded_db: Path) -> None:
        assert _run("--db", str(seeded_db), "show-code", "NEGO-NOPE") == "No results found."

    def test_main_prints(self, seeded_db: Path, capsys: pytest.CaptureFixture[str]) -> None:
        main(["--db", str(seeded_db), "negotiations", "nobody"])
        assert capsys.readouterr().out.strip() == "No results found."
