"""Storage layer: catalog storage contract and timestamp persistence."""

from taxonomy_sync.storage.catalog_store import CatalogStore, InMemoryCatalogStore
from taxonomy_sync.storage.sqlite_catalog_store import SQLiteCatalogStore
from taxonomy_sync.storage.timestamp_store import (
    InMemoryTimestampStore,
    SQLiteTimestampStore,
    TimestampStore,
)

__all__ = [
    "CatalogStore",
    "InMemoryCatalogStore",
    "SQLiteCatalogStore",
    "TimestampStore",
    "InMemoryTimestampStore",
    "SQLiteTimestampStore",
]
