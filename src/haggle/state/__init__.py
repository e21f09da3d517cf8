"""Negotiation persistence package.

Provides the SQLite schema, the versioned negotiation store, and
serialization helpers shared by every store.
"""

from haggle.state.schema import close_db, connect_db, init_schema
from haggle.state.serializers import from_db_time, to_db_time, utc_now
from haggle.state.store import NegotiationStore

__all__ = [
    "NegotiationStore",
    "close_db",
    "connect_db",
    "from_db_time",
    "init_schema",
    "to_db_time",
    "utc_now",
]
