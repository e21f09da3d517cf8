"""Catalog interface: item prices and sellers, owned outside this engine.

``StaticCatalog`` loads a YAML file validated through Pydantic, for
development deployments and tests.  Production wires in a client for the
real catalog service that satisfies the same protocol.

Example ``catalog.yaml``::

    items:
      - item_id: proj-1
        seller_id: seller-1
        price: 500
        title: Portfolio website
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

import structlog
import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, Field, field_validator

from haggle.domain.errors import ItemNotFoundError

logger = structlog.get_logger()


class Catalog(Protocol):
    """Lookup of catalog items by id."""

    def get_item_price(self, item_id: str) -> int:
        """Return the item's current list price.

        Raises:
            ItemNotFoundError: If the item does not exist.
        """
        ...

    def get_item_seller(self, item_id: str) -> str:
        """Return the id of the user selling the item.

        Raises:
            ItemNotFoundError: If the item does not exist.
        """
        ...


class CatalogItem(BaseModel, frozen=True):
    """A fixed-price digital good offered by one seller."""

    item_id: str
    seller_id: str
    price: int
    title: str = ""

    @field_validator("price")
    @classmethod
    def price_must_be_positive(cls, v: int) -> int:
        """Ensure the list price is a positive integer."""
        if v <= 0:
            raise ValueError("price must be positive")
        return v


class CatalogFile(BaseModel):
    """Root of a YAML catalog file."""

    items: list[CatalogItem] = Field(default_factory=list)


class StaticCatalog:
    """In-memory catalog built from a list of items."""

    def __init__(self, items: list[CatalogItem] | None = None) -> None:
        self._items: dict[str, CatalogItem] = {item.item_id: item for item in items or []}

    @classmethod
    def from_yaml(cls, path: Path) -> StaticCatalog:
        """Load and validate a catalog file.

        A missing file yields an empty catalog and a warning, mirroring
        development setups that have not provisioned one yet.
        """
        if not path.exists():
            logger.warning("catalog_file_missing", path=str(path))
            return cls()
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        catalog_file = CatalogFile.model_validate(raw)
        logger.info("catalog_loaded", path=str(path), items=len(catalog_file.items))
        return cls(catalog_file.items)

    def add(self, item: CatalogItem) -> None:
        """Insert or replace an item."""
        self._items[item.item_id] = item

    def get(self, item_id: str) -> CatalogItem:
        """Return the full item record.

        Raises:
            ItemNotFoundError: If the item does not exist.
        """
        try:
            return self._items[item_id]
        except KeyError:
            raise ItemNotFoundError(item_id) from None

    def get_item_price(self, item_id: str) -> int:
        return self.get(item_id).price

    def get_item_seller(self, item_id: str) -> str:
        return self.get(item_id).seller_id

    def __len__(self) -> int:
        return len(self._items)
