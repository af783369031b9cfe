"""Core storage - key/value state persistence plus sales and client stores."""

from core.storage.state_store import (
    StateStore,
    InMemoryStateStore,
    SQLiteStateStore,
    create_state_store,
)
from core.storage.sales import SalesStore
from core.storage.clients import ClientConfigStore

__all__ = [
    "StateStore",
    "InMemoryStateStore",
    "SQLiteStateStore",
    "create_state_store",
    "SalesStore",
    "ClientConfigStore",
]
