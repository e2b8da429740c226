"""Modification timestamp tracking for attribute definitions and terms."""

from datetime import datetime, timezone
from typing import Callable

import structlog

from taxonomy_sync.models.taxonomy import ensure_utc
from taxonomy_sync.storage.timestamp_store import EntityKind, TimestampStore

log = structlog.stdlib.get_logger()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ModificationTracker:
    """Stamps attribute definitions and terms with their last modification time.

    Stamps are UTC with second precision, which is the precision of the wire
    format. A stamp never moves backwards: if the clock reports an instant
    older than the stored stamp, the stored stamp is kept.
    """

    def __init__(self, store: TimestampStore, clock: Callable[[], datetime] = utc_now):
        """
        Initialize modification tracker.

        Args:
            store: Durable key/value storage for timestamps
            clock: Source of the current time (injectable for tests)
        """
        self._store: TimestampStore = store
        self._clock: Callable[[], datetime] = clock
        log.info("modification_tracker_initialized", store=type(store).__name__)

    def record_attribute_modified(self, attribute_id: int) -> datetime | None:
        """Stamp an attribute definition with the current UTC time.

        Returns:
            The stamp now in effect, or None if it could not be persisted
        """
        return self._record("attribute", attribute_id)

    def record_term_modified(self, term_id: int) -> datetime | None:
        """Stamp an attribute term with the current UTC time.

        Returns:
            The stamp now in effect, or None if it could not be persisted
        """
        return self._record("term", term_id)

    def get_attribute_modified_at(self, attribute_id: int) -> datetime | None:
        return self._store.get("attribute", attribute_id)

    def get_term_modified_at(self, term_id: int) -> datetime | None:
        return self._store.get("term", term_id)

    def on_attribute_changed(self, attribute_id: int) -> None:
        """Catalog callback invoked after an attribute definition is created or updated."""
        self.record_attribute_modified(attribute_id)

    def on_term_changed(self, term_id: int, taxonomy: str) -> None:
        """Catalog callback invoked after an attribute term is created or updated."""
        log.debug("attribute_term_changed", term_id=term_id, taxonomy=taxonomy)
        self.record_term_modified(term_id)

    def _record(self, kind: EntityKind, entity_id: int) -> datetime | None:
        stamp = ensure_utc(self._clock()).replace(microsecond=0)

        try:
            previous = self._store.get(kind, entity_id)
            if previous is not None and previous > stamp:
                log.warning(
                    "clock_behind_stored_stamp",
                    kind=kind,
                    entity_id=entity_id,
                    stored=previous.isoformat(),
                    clock=stamp.isoformat(),
                )
                return previous

            self._store.set(kind, entity_id, stamp)
        except Exception as e:
            # The mutation that triggered the stamp has already happened.
            log.error(
                "failed_to_record_modification",
                kind=kind,
                entity_id=entity_id,
                error=str(e),
            )
            return None

        log.info(
            "modification_recorded",
            kind=kind,
            entity_id=entity_id,
            modified_gmt=stamp.isoformat(),
        )
        return stamp
