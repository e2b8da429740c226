"""Key/value storage for modification timestamps."""

import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Literal, Optional

import structlog

from taxonomy_sync.models.taxonomy import ensure_utc

log = structlog.stdlib.get_logger()

EntityKind = Literal["attribute", "term"]

DEFAULT_BUSY_TIMEOUT_MS = 30000


class TimestampStore(ABC):
    """Narrow get/set interface keyed by (entity kind, entity id)."""

    @abstractmethod
    def get(self, kind: EntityKind, entity_id: int) -> Optional[datetime]:
        """Return the stored UTC timestamp, or None if the entity was never stamped."""
        pass

    @abstractmethod
    def set(self, kind: EntityKind, entity_id: int, value: datetime) -> None:
        """Store a timestamp, replacing any previous value.

        Raises:
            RuntimeError: If the value cannot be persisted
        """
        pass


class InMemoryTimestampStore(TimestampStore):
    """Process-local timestamp store."""

    def __init__(self) -> None:
        self._values: dict[tuple[str, int], datetime] = {}

    def get(self, kind: EntityKind, entity_id: int) -> Optional[datetime]:
        return self._values.get((kind, int(entity_id)))

    def set(self, kind: EntityKind, entity_id: int, value: datetime) -> None:
        self._values[(kind, int(entity_id))] = ensure_utc(value)


class SQLiteTimestampStore(TimestampStore):
    """Timestamp store persisted in a single SQLite table.

    Timestamps are stored as ISO 8601 strings in UTC.
    """

    def __init__(self, db_path: str | Path, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS):
        path = Path(db_path)
        if str(path) != ":memory:":
            path.parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._connection = sqlite3.connect(
            str(path),
            check_same_thread=False,
            timeout=max(1.0, busy_timeout_ms / 1000),
        )
        self._connection.execute("PRAGMA journal_mode=WAL")
        self._connection.execute("PRAGMA synchronous=NORMAL")
        self._connection.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
        self._connection.execute(
            """
            CREATE TABLE IF NOT EXISTS modification_timestamps (
                kind TEXT NOT NULL,
                entity_id INTEGER NOT NULL,
                modified_gmt TEXT NOT NULL,
                PRIMARY KEY (kind, entity_id)
            )
            """
        )
        self._connection.commit()
        log.info("sqlite_timestamp_store_initialized", db_path=str(path))

    def get(self, kind: EntityKind, entity_id: int) -> Optional[datetime]:
        with self._lock:
            row = self._connection.execute(
                "SELECT modified_gmt FROM modification_timestamps WHERE kind = ? AND entity_id = ?",
                (kind, int(entity_id)),
            ).fetchone()

        if row is None:
            return None
        return ensure_utc(datetime.fromisoformat(row[0]))

    def set(self, kind: EntityKind, entity_id: int, value: datetime) -> None:
        try:
            with self._lock:
                self._connection.execute(
                    """
                    INSERT INTO modification_timestamps (kind, entity_id, modified_gmt)
                    VALUES (?, ?, ?)
                    ON CONFLICT (kind, entity_id) DO UPDATE SET modified_gmt = excluded.modified_gmt
                    """,
                    (kind, int(entity_id), ensure_utc(value).isoformat()),
                )
                self._connection.commit()
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to persist timestamp for {kind} {entity_id}: {e}") from e

    def close(self) -> None:
        with self._lock:
            self._connection.close()
