"""Domain port definitions for adapters."""

from __future__ import annotations

from .store import EntityStore, Filter, StoreError, StoreQueryError, StoreTransactionError

__all__ = [
    "EntityStore",
    "Filter",
    "StoreError",
    "StoreQueryError",
    "StoreTransactionError",
]
