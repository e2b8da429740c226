"""Catalog store persisted in SQLite, used by client runs that must survive the process."""

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

import structlog

from taxonomy_sync.errors import CatalogError
from taxonomy_sync.models.taxonomy import taxonomy_name
from taxonomy_sync.storage.catalog_store import (
    AssetRecord,
    AttributeChangedCallback,
    AttributeRecord,
    CatalogStore,
    TermChangedCallback,
    TermRecord,
)
from taxonomy_sync.storage.timestamp_store import DEFAULT_BUSY_TIMEOUT_MS

log = structlog.stdlib.get_logger()

SCHEMA = """
CREATE TABLE IF NOT EXISTS attributes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    label TEXT NOT NULL,
    type TEXT NOT NULL,
    order_by TEXT NOT NULL,
    has_archives INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE IF NOT EXISTS taxonomies (
    taxonomy TEXT PRIMARY KEY,
    label TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS terms (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    taxonomy TEXT NOT NULL REFERENCES taxonomies (taxonomy),
    name TEXT NOT NULL,
    slug TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    UNIQUE (taxonomy, slug)
);
CREATE TABLE IF NOT EXISTS term_meta (
    term_id INTEGER NOT NULL REFERENCES terms (id),
    meta_key TEXT NOT NULL,
    meta_value TEXT NOT NULL,
    PRIMARY KEY (term_id, meta_key)
);
CREATE TABLE IF NOT EXISTS assets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    filename TEXT NOT NULL,
    title TEXT NOT NULL,
    content_type TEXT NOT NULL,
    content BLOB NOT NULL
);
CREATE TABLE IF NOT EXISTS asset_meta (
    asset_id INTEGER NOT NULL REFERENCES assets (id),
    meta_key TEXT NOT NULL,
    meta_value TEXT NOT NULL,
    PRIMARY KEY (asset_id, meta_key)
);
CREATE INDEX IF NOT EXISTS idx_asset_meta_lookup ON asset_meta (meta_key, meta_value);
"""


class SQLiteCatalogStore(CatalogStore):
    """Catalog kept in a single SQLite file.

    Each write commits before the change listeners run. Asset meta is
    written in the same transaction as the asset row.
    """

    def __init__(
        self,
        db_path: str | Path,
        asset_base_url: str = "http://localhost/assets",
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
        on_attribute_changed: Optional[AttributeChangedCallback] = None,
        on_term_changed: Optional[TermChangedCallback] = None,
    ):
        """
        Open (and create if needed) a catalog database.

        Args:
            db_path: SQLite file path, or ``:memory:``
            asset_base_url: Prefix for the URLs of stored assets
            busy_timeout_ms: How long a write waits for a competing lock
            on_attribute_changed: Optional attribute change listener
            on_term_changed: Optional term change listener
        """
        super().__init__(on_attribute_changed=on_attribute_changed, on_term_changed=on_term_changed)

        path = Path(db_path)
        if str(path) != ":memory:":
            path.parent.mkdir(parents=True, exist_ok=True)

        self._asset_base_url = asset_base_url.rstrip("/")
        self._lock = threading.RLock()
        self._connection = sqlite3.connect(
            str(path),
            check_same_thread=False,
            timeout=max(1.0, busy_timeout_ms / 1000),
        )
        self._connection.row_factory = sqlite3.Row
        self._connection.execute("PRAGMA journal_mode=WAL")
        self._connection.execute("PRAGMA synchronous=NORMAL")
        self._connection.execute("PRAGMA foreign_keys=ON")
        self._connection.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
        self._connection.executescript(SCHEMA)
        self._connection.commit()
        log.info("sqlite_catalog_store_initialized", db_path=str(path))

    def close(self) -> None:
        with self._lock:
            self._connection.close()

    # Attribute definitions

    def list_attributes(self) -> list[AttributeRecord]:
        rows = self._query("SELECT * FROM attributes ORDER BY id")
        return [self._attribute(row) for row in rows]

    def get_attribute(self, attribute_id: int) -> Optional[AttributeRecord]:
        row = self._query_one("SELECT * FROM attributes WHERE id = ?", (int(attribute_id),))
        return self._attribute(row) if row else None

    def find_attribute(self, name: str) -> Optional[AttributeRecord]:
        row = self._query_one("SELECT * FROM attributes WHERE name = ?", (name,))
        return self._attribute(row) if row else None

    def create_attribute(
        self, name: str, label: str, type: str, order_by: str, has_archives: bool
    ) -> int:
        if not name:
            raise CatalogError("Attribute slug cannot be empty")
        if self.find_attribute(name) is not None:
            raise CatalogError(f"Attribute slug '{name}' is already in use")

        with self._lock, self._transaction("create attribute") as cursor:
            cursor.execute(
                "INSERT INTO attributes (name, label, type, order_by, has_archives) VALUES (?, ?, ?, ?, ?)",
                (name, label, type, order_by, int(has_archives)),
            )
            attribute_id = int(cursor.lastrowid)
            cursor.execute(
                "INSERT OR IGNORE INTO taxonomies (taxonomy, label) VALUES (?, ?)",
                (taxonomy_name(name), label),
            )

        log.debug("catalog_attribute_created", attribute_id=attribute_id, name=name)
        self._notify_attribute_changed(attribute_id)
        return attribute_id

    def update_attribute(
        self, attribute_id: int, label: str, type: str, order_by: str, has_archives: bool
    ) -> None:
        with self._lock, self._transaction("update attribute") as cursor:
            cursor.execute(
                "UPDATE attributes SET label = ?, type = ?, order_by = ?, has_archives = ? WHERE id = ?",
                (label, type, order_by, int(has_archives), int(attribute_id)),
            )
            if cursor.rowcount == 0:
                raise CatalogError(f"Attribute {attribute_id} does not exist")

        log.debug("catalog_attribute_updated", attribute_id=attribute_id)
        self._notify_attribute_changed(attribute_id)

    # Taxonomies

    def register_taxonomy(self, taxonomy: str, label: str) -> None:
        with self._lock, self._transaction("register taxonomy") as cursor:
            cursor.execute(
                "INSERT OR IGNORE INTO taxonomies (taxonomy, label) VALUES (?, ?)",
                (taxonomy, label),
            )

    def taxonomy_exists(self, taxonomy: str) -> bool:
        return self._query_one("SELECT 1 FROM taxonomies WHERE taxonomy = ?", (taxonomy,)) is not None

    # Terms

    def list_terms(self, taxonomy: str) -> list[TermRecord]:
        if not self.taxonomy_exists(taxonomy):
            raise CatalogError(f"Taxonomy '{taxonomy}' is not registered")
        rows = self._query("SELECT * FROM terms WHERE taxonomy = ? ORDER BY id", (taxonomy,))
        return [self._term(row) for row in rows]

    def get_term(self, term_id: int) -> Optional[TermRecord]:
        row = self._query_one("SELECT * FROM terms WHERE id = ?", (int(term_id),))
        return self._term(row) if row else None

    def find_term(self, taxonomy: str, slug: str) -> Optional[TermRecord]:
        row = self._query_one("SELECT * FROM terms WHERE taxonomy = ? AND slug = ?", (taxonomy, slug))
        return self._term(row) if row else None

    def create_term(self, taxonomy: str, name: str, slug: str, description: str = "") -> int:
        if not self.taxonomy_exists(taxonomy):
            raise CatalogError(f"Taxonomy '{taxonomy}' is not registered")
        if not slug:
            raise CatalogError("Term slug cannot be empty")
        if self.find_term(taxonomy, slug) is not None:
            raise CatalogError(f"Term slug '{slug}' already exists in '{taxonomy}'")

        with self._lock, self._transaction("create term") as cursor:
            cursor.execute(
                "INSERT INTO terms (taxonomy, name, slug, description) VALUES (?, ?, ?, ?)",
                (taxonomy, name, slug, description),
            )
            term_id = int(cursor.lastrowid)

        log.debug("catalog_term_created", term_id=term_id, taxonomy=taxonomy, slug=slug)
        self._notify_term_changed(term_id, taxonomy)
        return term_id

    def update_term(self, term_id: int, taxonomy: str, slug: str, description: str) -> None:
        record = self.get_term(term_id)
        if record is None or record.taxonomy != taxonomy:
            raise CatalogError(f"Term {term_id} does not exist in '{taxonomy}'")
        existing = self.find_term(taxonomy, slug)
        if existing is not None and existing.id != term_id:
            raise CatalogError(f"Term slug '{slug}' already exists in '{taxonomy}'")

        with self._lock, self._transaction("update term") as cursor:
            cursor.execute(
                "UPDATE terms SET slug = ?, description = ? WHERE id = ?",
                (slug, description, int(term_id)),
            )

        log.debug("catalog_term_updated", term_id=term_id, taxonomy=taxonomy)
        self._notify_term_changed(term_id, taxonomy)

    def get_term_meta(self, term_id: int, key: str) -> Optional[str]:
        row = self._query_one(
            "SELECT meta_value FROM term_meta WHERE term_id = ? AND meta_key = ?",
            (int(term_id), key),
        )
        return row["meta_value"] if row else None

    def update_term_meta(self, term_id: int, key: str, value: str) -> None:
        if self.get_term(term_id) is None:
            raise CatalogError(f"Term {term_id} does not exist")

        with self._lock, self._transaction("update term meta") as cursor:
            cursor.execute(
                """
                INSERT INTO term_meta (term_id, meta_key, meta_value) VALUES (?, ?, ?)
                ON CONFLICT (term_id, meta_key) DO UPDATE SET meta_value = excluded.meta_value
                """,
                (int(term_id), key, "" if value is None else str(value)),
            )

    def delete_term_meta(self, term_id: int, key: str) -> None:
        with self._lock, self._transaction("delete term meta") as cursor:
            cursor.execute(
                "DELETE FROM term_meta WHERE term_id = ? AND meta_key = ?",
                (int(term_id), key),
            )

    # Assets

    def create_asset(
        self,
        content: bytes,
        filename: str,
        title: str,
        content_type: str,
        meta: Optional[dict[str, str]] = None,
    ) -> int:
        if not content:
            raise CatalogError("Cannot create an asset from empty content")

        with self._lock, self._transaction("create asset") as cursor:
            cursor.execute(
                "INSERT INTO assets (filename, title, content_type, content) VALUES (?, ?, ?, ?)",
                (filename, title, content_type, sqlite3.Binary(content)),
            )
            asset_id = int(cursor.lastrowid)
            cursor.executemany(
                "INSERT INTO asset_meta (asset_id, meta_key, meta_value) VALUES (?, ?, ?)",
                [(asset_id, key, str(value)) for key, value in (meta or {}).items()],
            )

        log.debug("catalog_asset_created", asset_id=asset_id, filename=filename)
        return asset_id

    def get_asset(self, asset_id: int) -> Optional[AssetRecord]:
        row = self._query_one(
            "SELECT id, filename, title, content_type, length(content) AS size FROM assets WHERE id = ?",
            (int(asset_id),),
        )
        return self._asset(row) if row else None

    def get_asset_url(self, asset_id: int) -> Optional[str]:
        row = self._query_one("SELECT id, filename FROM assets WHERE id = ?", (int(asset_id),))
        return self._asset_url(row["id"], row["filename"]) if row else None

    def find_asset_by_meta(self, key: str, value: str) -> Optional[int]:
        row = self._query_one(
            "SELECT asset_id FROM asset_meta WHERE meta_key = ? AND meta_value = ? ORDER BY asset_id LIMIT 1",
            (key, value),
        )
        return int(row["asset_id"]) if row else None

    def list_assets(self) -> list[AssetRecord]:
        rows = self._query(
            "SELECT id, filename, title, content_type, length(content) AS size FROM assets ORDER BY id"
        )
        return [self._asset(row) for row in rows]

    # Row mapping

    def _attribute(self, row: sqlite3.Row) -> AttributeRecord:
        return AttributeRecord(
            id=row["id"],
            name=row["name"],
            label=row["label"],
            type=row["type"],
            order_by=row["order_by"],
            has_archives=bool(row["has_archives"]),
        )

    def _term(self, row: sqlite3.Row) -> TermRecord:
        meta_rows = self._query("SELECT meta_key, meta_value FROM term_meta WHERE term_id = ?", (row["id"],))
        return TermRecord(
            id=row["id"],
            taxonomy=row["taxonomy"],
            name=row["name"],
            slug=row["slug"],
            description=row["description"],
            meta={meta["meta_key"]: meta["meta_value"] for meta in meta_rows},
        )

    def _asset(self, row: sqlite3.Row) -> AssetRecord:
        meta_rows = self._query("SELECT meta_key, meta_value FROM asset_meta WHERE asset_id = ?", (row["id"],))
        return AssetRecord(
            id=row["id"],
            filename=row["filename"],
            title=row["title"],
            content_type=row["content_type"],
            url=self._asset_url(row["id"], row["filename"]),
            size=row["size"],
            meta={meta["meta_key"]: meta["meta_value"] for meta in meta_rows},
        )

    def _asset_url(self, asset_id: int, filename: str) -> str:
        return f"{self._asset_base_url}/{asset_id}/{filename}"

    # Connection helpers

    def _query(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._connection.execute(sql, params).fetchall()

    def _query_one(self, sql: str, params: tuple[Any, ...] = ()) -> Optional[sqlite3.Row]:
        with self._lock:
            return self._connection.execute(sql, params).fetchone()

    @contextmanager
    def _transaction(self, context: str) -> Iterator[sqlite3.Cursor]:
        """Yield a cursor, commit on success and map SQLite failures to CatalogError."""
        cursor = self._connection.cursor()
        try:
            yield cursor
        except sqlite3.Error as e:
            self._connection.rollback()
            log.error("catalog_write_failed", context=context, error=str(e))
            raise CatalogError(f"Failed to {context}: {e}") from e
        except Exception:
            self._connection.rollback()
            raise
        else:
            self._connection.commit()
