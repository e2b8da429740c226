"""Wiring for provider mode: catalog, tracker, listing service and HTTP app."""

from dataclasses import dataclass
from typing import Any

import structlog
import yaml
from fastapi import FastAPI

from taxonomy_sync.errors import ConfigurationError
from taxonomy_sync.models.config import AppConfig
from taxonomy_sync.models.taxonomy import strip_prefix, taxonomy_name
from taxonomy_sync.provider.api import create_app
from taxonomy_sync.provider.auth import ApplicationPasswordAuthenticator
from taxonomy_sync.provider.listing_service import ListingService
from taxonomy_sync.provider.modification_tracker import ModificationTracker
from taxonomy_sync.storage.catalog_store import (
    META_TERM_PRICE,
    META_TERM_SUFFIX,
    CatalogStore,
    InMemoryCatalogStore,
)
from taxonomy_sync.storage.timestamp_store import SQLiteTimestampStore, TimestampStore

log = structlog.stdlib.get_logger()


@dataclass
class ProviderService:
    """Provider-side components sharing one catalog and one tracker."""

    catalog: CatalogStore
    tracker: ModificationTracker
    listing_service: ListingService
    authenticator: ApplicationPasswordAuthenticator
    app: FastAPI


def build_provider(
    config: AppConfig,
    catalog: CatalogStore | None = None,
    timestamp_store: TimestampStore | None = None,
    authenticator: ApplicationPasswordAuthenticator | None = None,
) -> ProviderService:
    """
    Assemble the provider components.

    The tracker is registered as the catalog's change listener so every
    attribute/term create or update is stamped synchronously.

    Args:
        config: Application configuration
        catalog: Catalog storage (in-memory catalog if None)
        timestamp_store: Timestamp persistence (SQLite at the configured path if None)
        authenticator: Credential checker (built from ``config.provider.users`` if None)

    Returns:
        ProviderService bundle
    """
    if timestamp_store is None:
        timestamp_store = SQLiteTimestampStore(config.storage.timestamp_db_path)

    tracker = ModificationTracker(timestamp_store)

    if catalog is None:
        catalog = InMemoryCatalogStore()
    catalog.add_attribute_listener(tracker.on_attribute_changed)
    catalog.add_term_listener(tracker.on_term_changed)

    if authenticator is None:
        authenticator = ApplicationPasswordAuthenticator(config.provider.users)

    listing_service = ListingService(catalog, tracker)
    app = create_app(
        listing_service,
        authenticator,
        namespace=config.namespace,
        required_capability=config.provider.required_capability,
    )

    log.info("provider_service_built", namespace=config.namespace)
    return ProviderService(
        catalog=catalog,
        tracker=tracker,
        listing_service=listing_service,
        authenticator=authenticator,
        app=app,
    )


def seed_catalog(catalog: CatalogStore, data: dict[str, Any]) -> int:
    """
    Load attribute definitions and terms from a mapping into the catalog.

    Expected shape::

        attributes:
          - name: color
            label: Color
            terms:
              - {name: Red, slug: red, term_price: "2.50", term_suffix: "+"}

    Existing attributes and terms (matched by name/slug) are updated, so
    seeding the same data twice leaves the catalog unchanged apart from
    fresh modification stamps.

    Args:
        catalog: Catalog to populate
        data: Parsed seed document

    Returns:
        Number of terms written

    Raises:
        ConfigurationError: If the document does not have the expected shape
    """
    attributes = data.get("attributes")
    if not isinstance(attributes, list):
        raise ConfigurationError("Seed data must contain an 'attributes' list")

    term_count = 0
    for entry in attributes:
        if not isinstance(entry, dict) or not entry.get("name"):
            raise ConfigurationError(f"Invalid attribute entry in seed data: {entry!r}")

        name = strip_prefix(str(entry["name"]))
        label = str(entry.get("label") or name)
        fields = {
            "label": label,
            "type": entry.get("type", "select"),
            "order_by": entry.get("order_by", "menu_order"),
            "has_archives": bool(entry.get("has_archives", False)),
        }

        existing = catalog.find_attribute(name)
        if existing is None:
            catalog.create_attribute(name=name, **fields)
        else:
            catalog.update_attribute(existing.id, **fields)

        taxonomy = taxonomy_name(name)
        for term in entry.get("terms") or []:
            term_id = _seed_term(catalog, taxonomy, term)
            for key, meta_key in (("term_price", META_TERM_PRICE), ("term_suffix", META_TERM_SUFFIX)):
                if key in term:
                    catalog.update_term_meta(term_id, meta_key, str(term[key]))
            term_count += 1

    log.info("catalog_seeded", attribute_count=len(attributes), term_count=term_count)
    return term_count


def load_seed_file(catalog: CatalogStore, seed_path: str) -> int:
    """Read a YAML seed file and load it with :func:`seed_catalog`."""
    try:
        with open(seed_path, "r") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load seed file {seed_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Seed file must contain a mapping: {seed_path}")
    return seed_catalog(catalog, data)


def _seed_term(catalog: CatalogStore, taxonomy: str, term: dict[str, Any]) -> int:
    if not isinstance(term, dict) or not term.get("name"):
        raise ConfigurationError(f"Invalid term entry for '{taxonomy}' in seed data: {term!r}")

    slug = str(term.get("slug") or term["name"]).strip().lower().replace(" ", "-")
    description = str(term.get("description") or "")

    existing = catalog.find_term(taxonomy, slug)
    if existing is not None:
        catalog.update_term(existing.id, taxonomy, slug=slug, description=description)
        return existing.id
    return catalog.create_term(taxonomy, name=str(term["name"]), slug=slug, description=description)
