"""
store/ - Embedded key-value store

Provides the store handle the CLI operates on:
- KVStore / Iterator / Item interfaces
- SQLite-backed engine with a separate value log
"""

from .base import (
    DEFAULT_ITERATOR_OPTIONS,
    MAX_USER_META,
    Item,
    Iterator,
    IteratorOptions,
    KVStore,
    StoreOptions,
)
from .sqlite_backend import SQLiteKVStore, SQLiteIterator


def open_store(options: StoreOptions) -> KVStore:
    """Open the store described by ``options``."""
    return SQLiteKVStore.open(options)


__all__ = [
    "DEFAULT_ITERATOR_OPTIONS",
    "MAX_USER_META",
    "Item",
    "Iterator",
    "IteratorOptions",
    "KVStore",
    "StoreOptions",
    "SQLiteKVStore",
    "SQLiteIterator",
    "open_store",
]
