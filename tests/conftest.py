"""Shared pytest fixtures for the haggle engine test suite."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from haggle.app import create_app, initialize_services
from haggle.config import Settings
from haggle.external.catalog import CatalogItem, StaticCatalog
from haggle.service.discounts import DiscountService
from haggle.service.negotiations import NegotiationService
from haggle.state.schema import close_db, connect_db

TEST_SALT = "test-salt"
T0 = datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced clock for deterministic expiry tests."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """A clock frozen at 2026-01-15 12:00 UTC until advanced."""
    return FakeClock()


@pytest.fixture
def conn() -> Iterator[sqlite3.Connection]:
    """In-memory SQLite connection with the full schema."""
    connection = connect_db(":memory:")
    yield connection
    close_db(connection)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """File-backed database with the schema created, for multi-connection tests."""
    path = tmp_path / "haggle.db"
    close_db(connect_db(path))
    return path


@pytest.fixture
def catalog() -> StaticCatalog:
    """A small catalog: a 500 item, a 50 item, and a 5000 item."""
    return StaticCatalog(
        [
            CatalogItem(item_id="item-1", seller_id="seller-1", price=500, title="Landing page"),
            CatalogItem(item_id="item-cheap", seller_id="seller-1", price=50, title="Icon set"),
            CatalogItem(item_id="item-big", seller_id="seller-2", price=5000, title="Web app"),
        ]
    )


@pytest.fixture
def negotiations(
    conn: sqlite3.Connection, catalog: StaticCatalog, clock: FakeClock
) -> NegotiationService:
    """NegotiationService over the in-memory database and fake clock."""
    return NegotiationService(conn, catalog, TEST_SALT, clock=clock)


@pytest.fixture
def discounts(
    conn: sqlite3.Connection, catalog: StaticCatalog, clock: FakeClock
) -> DiscountService:
    """DiscountService over the in-memory database and fake clock."""
    return DiscountService(conn, catalog, TEST_SALT, clock=clock)


CATALOG_YAML = """\
items:
  - item_id: item-1
    seller_id: seller-1
    price: 500
    title: Landing page
  - item_id: item-cheap
    seller_id: seller-1
    price: 50
    title: Icon set
  - item_id: item-big
    seller_id: seller-2
    price: 5000
    title: Web app
"""


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a temporary database and catalog file."""
    catalog_path = tmp_path / "catalog.yaml"
    catalog_path.write_text(CATALOG_YAML, encoding="utf-8")
    return Settings(
        db_path=tmp_path / "data" / "haggle.db",
        catalog_path=catalog_path,
        code_salt=TEST_SALT,
        sweep_interval_seconds=3600,
    )


@pytest.fixture
def services(settings: Settings, clock: FakeClock) -> Iterator[dict[str, Any]]:
    """Initialized application services driven by the fake clock."""
    initialized = initialize_services(settings)
    initialized["clock"] = clock
    yield initialized
    close_db(initialized["db_conn"])


@pytest.fixture
def client(services: dict[str, Any]) -> TestClient:
    """TestClient for the full application (lifespan not started)."""
    return TestClient(create_app(services))
