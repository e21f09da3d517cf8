"""Interfaces to collaborators outside the engine: catalog and purchase ledger."""

from haggle.external.catalog import Catalog, CatalogItem, StaticCatalog
from haggle.external.ledger import PurchaseLedger, SQLitePurchaseLedger

__all__ = [
    "Catalog",
    "CatalogItem",
    "PurchaseLedger",
    "SQLitePurchaseLedger",
    "StaticCatalog",
]
