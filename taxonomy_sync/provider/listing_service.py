"""Read-only, optionally time-filtered listings of attribute definitions and terms."""

import re
from datetime import datetime

import structlog

from taxonomy_sync.errors import InvalidParameterError, ListingError, NotFoundError
from taxonomy_sync.models.taxonomy import (
    ATTRIBUTE_PREFIX,
    AttributeDefinition,
    AttributeTerm,
    TermMeta,
    ensure_utc,
    strip_prefix,
)
from taxonomy_sync.provider.modification_tracker import ModificationTracker
from taxonomy_sync.storage.catalog_store import (
    META_TERM_PRICE,
    META_TERM_SUFFIX,
    META_THUMBNAIL_ID,
    AttributeRecord,
    CatalogStore,
    TermRecord,
)

log = structlog.stdlib.get_logger()

MODIFIED_SINCE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?Z?$")


def parse_modified_since(value: str | None) -> datetime | None:
    """
    Validate and parse a ``modified_since`` cursor.

    Args:
        value: ISO 8601 date-time (``YYYY-MM-DDTHH:MM:SS[.fraction][Z]``), or
               None/empty for no filter. Values without a zone are UTC.

    Returns:
        Aware UTC datetime, or None when no filter was given

    Raises:
        InvalidParameterError: If the value does not match the expected format
    """
    if value is None or value == "":
        return None

    invalid = InvalidParameterError(
        "Invalid date format for modified_since. Please use ISO8601 format (YYYY-MM-DDTHH:MM:SS).",
        param="modified_since",
    )
    if not MODIFIED_SINCE_PATTERN.match(value):
        raise invalid

    normalized = value[:-1] if value.endswith("Z") else value
    if "." in normalized:
        # fromisoformat only accepts up to microsecond precision
        base, fraction = normalized.split(".", 1)
        normalized = f"{base}.{fraction[:6].ljust(6, '0')}"

    try:
        return ensure_utc(datetime.fromisoformat(normalized))
    except ValueError:
        # Matches the pattern but is not a real date, e.g. month 13
        raise invalid from None


def is_modified_since(stamp: datetime | None, cursor: datetime | None) -> bool:
    """Filter rule shared by every listing.

    Without a cursor everything passes. With a cursor, only entities whose
    stamp is strictly newer pass; entities that were never stamped are
    excluded.
    """
    if cursor is None:
        return True
    if stamp is None:
        return False
    return stamp > cursor


class ListingService:
    """Builds the provider's attribute and term listings."""

    def __init__(self, catalog: CatalogStore, tracker: ModificationTracker):
        self._catalog: CatalogStore = catalog
        self._tracker: ModificationTracker = tracker

    def list_attributes(self, modified_since: str | None = None) -> list[AttributeDefinition]:
        """
        List attribute definitions in catalog order.

        Args:
            modified_since: Optional cursor; see ``parse_modified_since``

        Returns:
            Attribute definitions passing the modification filter

        Raises:
            InvalidParameterError: If ``modified_since`` is malformed
        """
        cursor = parse_modified_since(modified_since)
        log.info("listing_attributes", modified_since=modified_since)

        result: list[AttributeDefinition] = []
        for record in self._catalog.list_attributes():
            stamp = self._tracker.get_attribute_modified_at(record.id)
            if not is_modified_since(stamp, cursor):
                continue
            result.append(self._to_definition(record, stamp))

        log.info("attributes_listed", count=len(result))
        return result

    def get_attribute(self, slug: str) -> AttributeDefinition:
        """
        Look up one attribute definition by slug, with or without the prefix.

        Raises:
            NotFoundError: If no attribute has that slug
        """
        log.info("getting_attribute", slug=slug)

        record = self._catalog.find_attribute(strip_prefix(slug))
        if record is None:
            raise NotFoundError(
                "Attribute definition not found with the provided slug.", slug=slug
            )

        stamp = self._tracker.get_attribute_modified_at(record.id)
        return self._to_definition(record, stamp)

    def list_terms(
        self, attribute_slug: str, modified_since: str | None = None
    ) -> list[AttributeTerm]:
        """
        List the terms of one attribute taxonomy.

        Args:
            attribute_slug: Namespaced taxonomy slug, e.g. ``pa_color``
            modified_since: Optional cursor; see ``parse_modified_since``

        Returns:
            Terms passing the modification filter, in catalog order

        Raises:
            InvalidParameterError: If the slug is not a registered, prefixed
                                   taxonomy or the cursor is malformed
            ListingError: If the catalog fails while listing
        """
        if not attribute_slug.startswith(ATTRIBUTE_PREFIX) or not self._catalog.taxonomy_exists(
            attribute_slug
        ):
            raise InvalidParameterError(
                "Invalid attribute taxonomy slug provided.",
                param="attribute_slug",
                slug=attribute_slug,
            )
        cursor = parse_modified_since(modified_since)

        log.info("listing_terms", attribute_slug=attribute_slug, modified_since=modified_since)

        try:
            records = self._catalog.list_terms(attribute_slug)
        except Exception as e:
            log.error("failed_to_list_terms", attribute_slug=attribute_slug, error=str(e))
            raise ListingError(
                "Error fetching terms for the attribute.", slug=attribute_slug
            ) from e

        result: list[AttributeTerm] = []
        for record in records:
            stamp = self._tracker.get_term_modified_at(record.id)
            if not is_modified_since(stamp, cursor):
                continue
            result.append(self._to_term(record, stamp))

        log.info("terms_listed", attribute_slug=attribute_slug, count=len(result))
        return result

    def get_term_image_url(self, term: TermRecord) -> str | None:
        """Resolve the swatch image URL from the term's linked thumbnail asset."""
        thumbnail_id = self._thumbnail_id(term)
        if thumbnail_id is None:
            return None
        return self._catalog.get_asset_url(thumbnail_id) or None

    def _thumbnail_id(self, term: TermRecord) -> int | None:
        raw = term.meta.get(META_THUMBNAIL_ID)
        try:
            value = int(raw) if raw else 0
        except ValueError:
            log.warning("invalid_thumbnail_id", term_id=term.id, thumbnail_id=raw)
            return None
        return value or None

    def _to_definition(self, record: AttributeRecord, stamp: datetime | None) -> AttributeDefinition:
        return AttributeDefinition(
            id=record.id,
            name=record.label,
            slug=record.taxonomy,
            type=record.type,
            order_by=record.order_by,
            has_archives=record.has_archives,
            modified_gmt=stamp,
        )

    def _to_term(self, record: TermRecord, stamp: datetime | None) -> AttributeTerm:
        return AttributeTerm(
            id=record.id,
            name=record.name,
            slug=record.slug,
            description=record.description,
            meta=TermMeta(
                term_price=record.meta.get(META_TERM_PRICE, ""),
                term_suffix=record.meta.get(META_TERM_SUFFIX, ""),
                thumbnail_id=self._thumbnail_id(record),
            ),
            swatch_image_url=self.get_term_image_url(record),
            modified_gmt=stamp,
            attribute_slug=record.taxonomy,
        )
