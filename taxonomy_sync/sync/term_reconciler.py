"""Reconcile fetched attribute terms into the local catalog."""

from datetime import datetime
from typing import Optional

import structlog

from taxonomy_sync.errors import AssetError
from taxonomy_sync.models.taxonomy import AttributeTerm, SyncLinkRecord, format_timestamp
from taxonomy_sync.storage.catalog_store import (
    META_LAST_SYNCED_GMT,
    META_SOURCE_TERM_ID,
    META_TERM_PRICE,
    META_TERM_SUFFIX,
    META_THUMBNAIL_ID,
    CatalogStore,
)
from taxonomy_sync.sync.image_cache import ImageDedupCache
from taxonomy_sync.sync.models import TermCounts

log = structlog.stdlib.get_logger()


class TermReconciler:
    """Creates or updates one local term from its provider counterpart.

    Terms are matched by ``(taxonomy, slug)``. Writes are not transactional:
    if a later step raises, the earlier writes for that term stay in place.
    """

    def __init__(self, catalog: CatalogStore, image_cache: ImageDedupCache):
        self._catalog = catalog
        self._image_cache = image_cache

    def reconcile(
        self,
        taxonomy: str,
        term: AttributeTerm,
        counts: TermCounts,
        errors: Optional[list[str]] = None,
    ) -> int:
        """
        Write ``term`` into ``taxonomy`` and link its swatch image.

        Args:
            taxonomy: Local taxonomy name, e.g. pa_color
            term: Term fetched from the provider
            counts: Counters updated in place
            errors: Optional list that collects image failure messages

        Returns:
            Local term id

        Raises:
            CatalogError: If the term write or a meta write fails
        """
        existing = self._catalog.find_term(taxonomy, term.slug)

        if existing is not None:
            term_id = existing.id
            log.debug("term_updating", taxonomy=taxonomy, term_id=term_id, slug=term.slug)
            self._catalog.update_term(term_id, taxonomy, slug=term.slug, description=term.description)
            counts.updated += 1
        else:
            log.debug("term_creating", taxonomy=taxonomy, slug=term.slug)
            term_id = self._catalog.create_term(
                taxonomy, name=term.name, slug=term.slug, description=term.description
            )
            counts.created += 1

        self._catalog.update_term_meta(term_id, META_TERM_PRICE, term.meta.term_price)
        self._catalog.update_term_meta(term_id, META_TERM_SUFFIX, term.meta.term_suffix)

        self._catalog.update_term_meta(term_id, META_SOURCE_TERM_ID, str(term.id))
        self._catalog.update_term_meta(
            term_id, META_LAST_SYNCED_GMT, format_timestamp(term.modified_gmt) or ""
        )

        self._link_image(term_id, term, counts, errors)
        return term_id

    def get_sync_link(self, term_id: int) -> Optional[SyncLinkRecord]:
        """Read back the bookkeeping written by the last reconciliation of ``term_id``."""
        source_term_id = self._catalog.get_term_meta(term_id, META_SOURCE_TERM_ID)
        if not source_term_id:
            return None

        last_synced = self._catalog.get_term_meta(term_id, META_LAST_SYNCED_GMT)
        last_synced_at = None
        if last_synced:
            last_synced_at = datetime.fromisoformat(last_synced.replace("Z", "+00:00"))

        return SyncLinkRecord(
            local_term_id=term_id,
            source_term_id=int(source_term_id),
            last_synced_at=last_synced_at,
        )

    def _link_image(
        self,
        term_id: int,
        term: AttributeTerm,
        counts: TermCounts,
        errors: Optional[list[str]],
    ) -> None:
        source_url = term.swatch_image_url

        if not source_url:
            self._catalog.delete_term_meta(term_id, META_THUMBNAIL_ID)
            return

        try:
            resolution = self._image_cache.ensure_local_asset(source_url, title=term.name)
        except AssetError as e:
            log.error(
                "image_sideload_failed",
                term_id=term_id,
                source_url=source_url,
                error=e.message,
            )
            counts.images_failed += 1
            if errors is not None:
                errors.append(f"Failed to sideload image from {source_url}: {e.message}")
            return

        if resolution.sideloaded:
            counts.images_sideloaded += 1

        self._catalog.update_term_meta(term_id, META_THUMBNAIL_ID, str(resolution.asset_id))
