"""Sync client orchestrating attribute and term reconciliation against a provider."""

import threading
from datetime import datetime, timezone
from typing import Optional

import requests
import structlog

from taxonomy_sync.client.downloader import ImageDownloader
from taxonomy_sync.client.transport import ProviderTransport
from taxonomy_sync.errors import (
    ConfigurationError,
    SyncAbortedError,
    SyncInProgressError,
    TransportError,
)
from taxonomy_sync.models.config import AppConfig
from taxonomy_sync.models.taxonomy import AttributeDefinition, taxonomy_name
from taxonomy_sync.storage.catalog_store import CatalogStore
from taxonomy_sync.sync.image_cache import ImageDedupCache
from taxonomy_sync.sync.models import ConnectionStatus, SyncSummary
from taxonomy_sync.sync.term_reconciler import TermReconciler

log = structlog.stdlib.get_logger()


class SyncClient:
    """Pulls attribute definitions and terms from a provider into the local catalog.

    Failures are isolated per attribute and per term: once the attribute list
    has been fetched, a bad record only degrades the summary. Only one run may
    be active per client at a time.
    """

    def __init__(
        self,
        transport: Optional[ProviderTransport],
        catalog: CatalogStore,
        image_cache: ImageDedupCache,
        reconciler: Optional[TermReconciler] = None,
    ):
        """
        Initialize sync client.

        Args:
            transport: Provider transport, or None if no provider is configured
            catalog: Local catalog that receives the synced data
            image_cache: Dedup cache used for swatch images
            reconciler: Optional term reconciler (built from catalog and cache if None)
        """
        self._transport = transport
        self._catalog = catalog
        self._image_cache = image_cache
        self._reconciler = reconciler or TermReconciler(catalog, image_cache)
        self._run_lock = threading.Lock()

        log.info("sync_client_initialized", configured=self.is_configured)

    @property
    def is_configured(self) -> bool:
        return self._transport is not None and self._transport.is_configured

    @property
    def reconciler(self) -> TermReconciler:
        return self._reconciler

    def sync_attributes_and_terms(self, single_attribute_slug: Optional[str] = None) -> SyncSummary:
        """
        Mirror provider attribute definitions and their terms locally.

        Args:
            single_attribute_slug: Restrict the run to this attribute (e.g. pa_color)

        Returns:
            SyncSummary with created/updated/failed counters

        Raises:
            ConfigurationError: If no endpoint or credentials are configured
            SyncAbortedError: If the attribute definitions cannot be fetched
            SyncInProgressError: If another run on this client is still active
        """
        if not self._run_lock.acquire(blocking=False):
            log.warning("sync_already_running", single_attribute_slug=single_attribute_slug)
            raise SyncInProgressError("A sync run is already in progress.")

        try:
            return self._run(single_attribute_slug)
        finally:
            self._run_lock.release()

    def fetch_provider_attributes(self) -> list[AttributeDefinition]:
        """
        Fetch the provider's attribute definitions without writing anything.

        Raises:
            ConfigurationError: If no endpoint or credentials are configured
            TransportError: If the request fails
        """
        transport = self._require_transport()
        attributes = transport.list_attributes()
        log.info("provider_attributes_fetched", attribute_count=len(attributes))
        return attributes

    def test_connection(self) -> ConnectionStatus:
        """Check that the provider is reachable and accepts the configured credentials.

        The unauthenticated health endpoint is checked first so an unreachable
        provider is told apart from rejected credentials.
        """
        try:
            transport = self._require_transport()
        except ConfigurationError as e:
            return ConnectionStatus(ok=False, message=f"Connection failed: {e.message}")

        try:
            healthy = transport.check_health()
        except TransportError as e:
            log.warning("connection_test_unreachable", error=e.message)
            return ConnectionStatus(ok=False, message=f"Connection failed: provider unreachable. {e.message}")
        if not healthy:
            log.warning("connection_test_unhealthy")
            return ConnectionStatus(ok=False, message="Connection failed: provider health check did not report ok.")

        try:
            attributes = self.fetch_provider_attributes()
        except (ConfigurationError, TransportError) as e:
            log.warning("connection_test_failed", error=e.message)
            return ConnectionStatus(ok=False, message=f"Connection failed: {e.message}")

        message = f"Connection successful. Provider exposes {len(attributes)} attributes."
        log.info("connection_test_succeeded", attribute_count=len(attributes))
        return ConnectionStatus(ok=True, message=message, attribute_count=len(attributes))

    def _run(self, single_attribute_slug: Optional[str]) -> SyncSummary:
        transport = self._require_transport()

        start_time = datetime.now(timezone.utc)
        log.info(
            "attribute_sync_started",
            single_attribute_slug=single_attribute_slug,
            start_time=start_time,
        )

        summary = SyncSummary(
            single_attribute_slug=single_attribute_slug,
            start_time=start_time,
            end_time=start_time,
        )

        remote_attributes = self._fetch_attributes(transport, single_attribute_slug)
        log.info("provider_attributes_fetched", attribute_count=len(remote_attributes))

        local_attribute_map = {record.name: record.id for record in self._catalog.list_attributes()}

        for attribute in remote_attributes:
            log.debug("attribute_processing", slug=attribute.slug, name=attribute.name)
            try:
                self._write_attribute(attribute, local_attribute_map, summary)
            except Exception as e:
                error_msg = f"Failed to process attribute '{attribute.name}': {e}"
                summary.errors.append(error_msg)
                summary.attributes.failed += 1
                log.error("attribute_sync_failed", slug=attribute.slug, error=str(e))
                continue

            self._sync_terms(transport, attribute, summary)

        end_time = datetime.now(timezone.utc)
        summary.end_time = end_time
        summary.duration_seconds = (end_time - start_time).total_seconds()

        log.info(
            "attribute_sync_completed",
            attributes_created=summary.attributes.created,
            attributes_updated=summary.attributes.updated,
            attributes_failed=summary.attributes.failed,
            terms_created=summary.terms.created,
            terms_updated=summary.terms.updated,
            terms_failed=summary.terms.failed,
            images_sideloaded=summary.terms.images_sideloaded,
            images_failed=summary.terms.images_failed,
            duration_seconds=summary.duration_seconds,
        )
        log.info("sync_summary", message=summary.message)

        return summary

    def _fetch_attributes(
        self, transport: ProviderTransport, single_attribute_slug: Optional[str]
    ) -> list[AttributeDefinition]:
        try:
            if single_attribute_slug:
                return [transport.get_attribute(single_attribute_slug)]
            return transport.list_attributes()
        except TransportError as e:
            if single_attribute_slug:
                message = f"Failed to fetch single attribute from provider: {e.message}"
            else:
                message = f"Failed to fetch attributes from provider: {e.message}"
            log.error("attribute_fetch_failed", single_attribute_slug=single_attribute_slug, error=e.message)
            raise SyncAbortedError(message, cause=e) from e

    def _write_attribute(
        self,
        attribute: AttributeDefinition,
        local_attribute_map: dict[str, int],
        summary: SyncSummary,
    ) -> None:
        name = attribute.name_only
        attribute_id = local_attribute_map.get(name)

        if attribute_id is not None:
            log.info("attribute_updating", attribute_id=attribute_id, name=attribute.name)
            self._catalog.update_attribute(
                attribute_id,
                label=attribute.name,
                type=attribute.type,
                order_by=attribute.order_by,
                has_archives=attribute.has_archives,
            )
            summary.attributes.updated += 1
            return

        log.info("attribute_creating", name=attribute.name)
        attribute_id = self._catalog.create_attribute(
            name=name,
            label=attribute.name,
            type=attribute.type,
            order_by=attribute.order_by,
            has_archives=attribute.has_archives,
        )
        local_attribute_map[name] = attribute_id
        summary.attributes.created += 1

        # Terms are written in the same run, so the taxonomy must exist now.
        taxonomy = taxonomy_name(name)
        if not self._catalog.taxonomy_exists(taxonomy):
            log.debug("taxonomy_registering", taxonomy=taxonomy)
            self._catalog.register_taxonomy(taxonomy, attribute.name)

    def _sync_terms(
        self, transport: ProviderTransport, attribute: AttributeDefinition, summary: SyncSummary
    ) -> None:
        taxonomy = taxonomy_name(attribute.slug)
        log.info("terms_fetching", attribute_slug=attribute.slug)

        try:
            terms = transport.list_terms(attribute.slug)
        except TransportError as e:
            summary.errors.append(f"Could not fetch terms for '{attribute.slug}': {e.message}")
            summary.attributes.failed += 1
            log.error("terms_fetch_failed", attribute_slug=attribute.slug, error=e.message)
            return

        log.info("terms_fetched", attribute_slug=attribute.slug, term_count=len(terms))

        for term in terms:
            try:
                self._reconciler.reconcile(taxonomy, term, summary.terms, summary.errors)
            except Exception as e:
                summary.errors.append(
                    f"Failed to process term '{term.name}' for attribute '{attribute.slug}': {e}"
                )
                summary.terms.failed += 1
                log.error(
                    "term_sync_failed",
                    attribute_slug=attribute.slug,
                    slug=term.slug,
                    error=str(e),
                )

    def _require_transport(self) -> ProviderTransport:
        if self._transport is None or not self._transport.is_configured:
            log.error("sync_not_configured")
            raise ConfigurationError("API credentials are not configured. Cannot start sync.")
        return self._transport


def build_sync_client(
    config: AppConfig,
    catalog: CatalogStore,
    session: Optional[requests.Session] = None,
) -> SyncClient:
    """
    Wire a SyncClient from application configuration.

    Args:
        config: Application configuration (client section is used)
        catalog: Local catalog that receives the synced data
        session: Optional shared requests session for API calls and image downloads

    Returns:
        SyncClient ready to run
    """
    client_config = config.client
    session = session or requests.Session()

    transport = ProviderTransport(
        api_url=client_config.api_url,
        username=client_config.username,
        app_password=client_config.app_password,
        namespace=config.namespace,
        timeout=client_config.timeout_seconds,
        max_retries=client_config.max_retries,
        session=session,
    )
    downloader = ImageDownloader(session=session, timeout=client_config.timeout_seconds)
    image_cache = ImageDedupCache(catalog, downloader)

    return SyncClient(transport, catalog, image_cache)
