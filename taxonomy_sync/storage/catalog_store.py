"""Catalog storage interface and an in-process implementation.

The catalog storage engine owns attribute definitions, attribute terms, term
metadata and image assets. The sync engine only depends on the
``CatalogStore`` contract. ``InMemoryCatalogStore`` backs the provider
service and the tests; ``SQLiteCatalogStore`` in
:mod:`taxonomy_sync.storage.sqlite_catalog_store` keeps a client catalog
across sync runs.
"""

import itertools
from abc import ABC, abstractmethod
from typing import Callable, Optional

import structlog
from pydantic import BaseModel, Field

from taxonomy_sync.errors import CatalogError
from taxonomy_sync.models.taxonomy import ATTRIBUTE_PREFIX, taxonomy_name

log = structlog.stdlib.get_logger()

META_TERM_PRICE = "term_price"
META_TERM_SUFFIX = "_term_suffix"
META_THUMBNAIL_ID = "thumbnail_id"
META_SOURCE_TERM_ID = "_source_term_id"
META_LAST_SYNCED_GMT = "_last_synced_gmt"
META_SOURCE_IMAGE_URL = "_source_image_url"

AttributeChangedCallback = Callable[[int], None]
TermChangedCallback = Callable[[int, str], None]


class AttributeRecord(BaseModel):
    """An attribute definition as persisted by the catalog."""

    id: int
    name: str = Field(default=..., description="Slug without the taxonomy prefix, e.g. color")
    label: str = Field(default=..., description="Display label, e.g. Color")
    type: str = "select"
    order_by: str = "menu_order"
    has_archives: bool = False

    @property
    def taxonomy(self) -> str:
        return taxonomy_name(self.name)


class TermRecord(BaseModel):
    """A term as persisted by the catalog."""

    id: int
    taxonomy: str
    name: str
    slug: str
    description: str = ""
    meta: dict[str, str] = Field(default_factory=dict)


class AssetRecord(BaseModel):
    """A materialised image asset."""

    id: int
    filename: str
    title: str
    content_type: str
    url: str
    size: int = Field(default=0, ge=0)
    meta: dict[str, str] = Field(default_factory=dict)


class CatalogStore(ABC):
    """Abstract interface for catalog create/read/update primitives.

    Implementations report successful attribute and term writes to the
    registered change callbacks so modification tracking stays decoupled from
    the storage engine.
    """

    def __init__(
        self,
        on_attribute_changed: Optional[AttributeChangedCallback] = None,
        on_term_changed: Optional[TermChangedCallback] = None,
    ):
        self._attribute_listeners: list[AttributeChangedCallback] = []
        self._term_listeners: list[TermChangedCallback] = []
        if on_attribute_changed is not None:
            self._attribute_listeners.append(on_attribute_changed)
        if on_term_changed is not None:
            self._term_listeners.append(on_term_changed)

    def add_attribute_listener(self, callback: AttributeChangedCallback) -> None:
        self._attribute_listeners.append(callback)

    def add_term_listener(self, callback: TermChangedCallback) -> None:
        self._term_listeners.append(callback)

    def _notify_attribute_changed(self, attribute_id: int) -> None:
        for callback in self._attribute_listeners:
            callback(attribute_id)

    def _notify_term_changed(self, term_id: int, taxonomy: str) -> None:
        # Only attribute taxonomies are tracked.
        if not taxonomy.startswith(ATTRIBUTE_PREFIX):
            return
        for callback in self._term_listeners:
            callback(term_id, taxonomy)

    # Attribute definitions

    @abstractmethod
    def list_attributes(self) -> list[AttributeRecord]:
        """Return every attribute definition in creation order."""
        pass

    @abstractmethod
    def get_attribute(self, attribute_id: int) -> Optional[AttributeRecord]:
        pass

    @abstractmethod
    def find_attribute(self, name: str) -> Optional[AttributeRecord]:
        """Find an attribute by its prefix-stripped slug."""
        pass

    @abstractmethod
    def create_attribute(
        self, name: str, label: str, type: str, order_by: str, has_archives: bool
    ) -> int:
        """Create an attribute definition and return its id.

        Raises:
            CatalogError: If the name is empty or already taken
        """
        pass

    @abstractmethod
    def update_attribute(
        self, attribute_id: int, label: str, type: str, order_by: str, has_archives: bool
    ) -> None:
        """Update an attribute definition in place.

        Raises:
            CatalogError: If the attribute does not exist
        """
        pass

    # Taxonomies

    @abstractmethod
    def register_taxonomy(self, taxonomy: str, label: str) -> None:
        """Make a taxonomy available for term writes."""
        pass

    @abstractmethod
    def taxonomy_exists(self, taxonomy: str) -> bool:
        pass

    # Terms

    @abstractmethod
    def list_terms(self, taxonomy: str) -> list[TermRecord]:
        """Return the terms of a taxonomy in creation order.

        Raises:
            CatalogError: If the taxonomy is not registered
        """
        pass

    @abstractmethod
    def get_term(self, term_id: int) -> Optional[TermRecord]:
        pass

    @abstractmethod
    def find_term(self, taxonomy: str, slug: str) -> Optional[TermRecord]:
        pass

    @abstractmethod
    def create_term(self, taxonomy: str, name: str, slug: str, description: str = "") -> int:
        """Create a term and return its id.

        Raises:
            CatalogError: If the taxonomy is unknown or the slug is taken
        """
        pass

    @abstractmethod
    def update_term(self, term_id: int, taxonomy: str, slug: str, description: str) -> None:
        """Update slug and description of a term.

        Raises:
            CatalogError: If the term does not exist or the slug collides
        """
        pass

    @abstractmethod
    def get_term_meta(self, term_id: int, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def update_term_meta(self, term_id: int, key: str, value: str) -> None:
        pass

    @abstractmethod
    def delete_term_meta(self, term_id: int, key: str) -> None:
        pass

    # Assets

    @abstractmethod
    def create_asset(
        self,
        content: bytes,
        filename: str,
        title: str,
        content_type: str,
        meta: Optional[dict[str, str]] = None,
    ) -> int:
        """Materialise an image asset together with its meta and return its id.

        Raises:
            CatalogError: If the content is empty or the asset cannot be stored
        """
        pass

    @abstractmethod
    def get_asset(self, asset_id: int) -> Optional[AssetRecord]:
        pass

    @abstractmethod
    def get_asset_url(self, asset_id: int) -> Optional[str]:
        pass

    @abstractmethod
    def find_asset_by_meta(self, key: str, value: str) -> Optional[int]:
        """Return the id of the first asset whose meta ``key`` equals ``value``."""
        pass

    @abstractmethod
    def list_assets(self) -> list[AssetRecord]:
        pass


class InMemoryCatalogStore(CatalogStore):
    """Dictionary-backed catalog.

    Term ids are allocated from one counter shared by all taxonomies, so a
    term id is unique across the whole catalog.
    """

    def __init__(
        self,
        asset_base_url: str = "http://localhost/assets",
        on_attribute_changed: Optional[AttributeChangedCallback] = None,
        on_term_changed: Optional[TermChangedCallback] = None,
    ):
        super().__init__(on_attribute_changed=on_attribute_changed, on_term_changed=on_term_changed)
        self._asset_base_url = asset_base_url.rstrip("/")
        self._attributes: dict[int, AttributeRecord] = {}
        self._taxonomies: dict[str, str] = {}
        self._terms: dict[int, TermRecord] = {}
        self._assets: dict[int, AssetRecord] = {}
        self._asset_content: dict[int, bytes] = {}
        self._attribute_ids = itertools.count(1)
        self._term_ids = itertools.count(1)
        self._asset_ids = itertools.count(1)

    def list_attributes(self) -> list[AttributeRecord]:
        return [record.model_copy() for record in self._attributes.values()]

    def get_attribute(self, attribute_id: int) -> Optional[AttributeRecord]:
        record = self._attributes.get(attribute_id)
        return record.model_copy() if record else None

    def find_attribute(self, name: str) -> Optional[AttributeRecord]:
        for record in self._attributes.values():
            if record.name == name:
                return record.model_copy()
        return None

    def create_attribute(
        self, name: str, label: str, type: str, order_by: str, has_archives: bool
    ) -> int:
        if not name:
            raise CatalogError("Attribute slug cannot be empty")
        if self.find_attribute(name) is not None:
            raise CatalogError(f"Attribute slug '{name}' is already in use")

        attribute_id = next(self._attribute_ids)
        record = AttributeRecord(
            id=attribute_id,
            name=name,
            label=label,
            type=type,
            order_by=order_by,
            has_archives=has_archives,
        )
        self._attributes[attribute_id] = record
        # The provider side makes the taxonomy available as soon as the definition exists.
        self._taxonomies.setdefault(record.taxonomy, label)

        log.debug("catalog_attribute_created", attribute_id=attribute_id, name=name)
        self._notify_attribute_changed(attribute_id)
        return attribute_id

    def update_attribute(
        self, attribute_id: int, label: str, type: str, order_by: str, has_archives: bool
    ) -> None:
        record = self._attributes.get(attribute_id)
        if record is None:
            raise CatalogError(f"Attribute {attribute_id} does not exist")

        self._attributes[attribute_id] = record.model_copy(
            update={
                "label": label,
                "type": type,
                "order_by": order_by,
                "has_archives": has_archives,
            }
        )

        log.debug("catalog_attribute_updated", attribute_id=attribute_id)
        self._notify_attribute_changed(attribute_id)

    def register_taxonomy(self, taxonomy: str, label: str) -> None:
        self._taxonomies.setdefault(taxonomy, label)

    def taxonomy_exists(self, taxonomy: str) -> bool:
        return taxonomy in self._taxonomies

    def list_terms(self, taxonomy: str) -> list[TermRecord]:
        if not self.taxonomy_exists(taxonomy):
            raise CatalogError(f"Taxonomy '{taxonomy}' is not registered")
        return [
            record.model_copy(deep=True)
            for record in self._terms.values()
            if record.taxonomy == taxonomy
        ]

    def get_term(self, term_id: int) -> Optional[TermRecord]:
        record = self._terms.get(term_id)
        return record.model_copy(deep=True) if record else None

    def find_term(self, taxonomy: str, slug: str) -> Optional[TermRecord]:
        for record in self._terms.values():
            if record.taxonomy == taxonomy and record.slug == slug:
                return record.model_copy(deep=True)
        return None

    def create_term(self, taxonomy: str, name: str, slug: str, description: str = "") -> int:
        if not self.taxonomy_exists(taxonomy):
            raise CatalogError(f"Taxonomy '{taxonomy}' is not registered")
        if not slug:
            raise CatalogError("Term slug cannot be empty")
        if self.find_term(taxonomy, slug) is not None:
            raise CatalogError(f"Term slug '{slug}' already exists in '{taxonomy}'")

        term_id = next(self._term_ids)
        self._terms[term_id] = TermRecord(
            id=term_id,
            taxonomy=taxonomy,
            name=name,
            slug=slug,
            description=description,
        )

        log.debug("catalog_term_created", term_id=term_id, taxonomy=taxonomy, slug=slug)
        self._notify_term_changed(term_id, taxonomy)
        return term_id

    def update_term(self, term_id: int, taxonomy: str, slug: str, description: str) -> None:
        record = self._terms.get(term_id)
        if record is None or record.taxonomy != taxonomy:
            raise CatalogError(f"Term {term_id} does not exist in '{taxonomy}'")
        existing = self.find_term(taxonomy, slug)
        if existing is not None and existing.id != term_id:
            raise CatalogError(f"Term slug '{slug}' already exists in '{taxonomy}'")

        record.slug = slug
        record.description = description

        log.debug("catalog_term_updated", term_id=term_id, taxonomy=taxonomy)
        self._notify_term_changed(term_id, taxonomy)

    def get_term_meta(self, term_id: int, key: str) -> Optional[str]:
        record = self._terms.get(term_id)
        if record is None:
            return None
        return record.meta.get(key)

    def update_term_meta(self, term_id: int, key: str, value: str) -> None:
        record = self._terms.get(term_id)
        if record is None:
            raise CatalogError(f"Term {term_id} does not exist")
        record.meta[key] = "" if value is None else str(value)

    def delete_term_meta(self, term_id: int, key: str) -> None:
        record = self._terms.get(term_id)
        if record is not None:
            record.meta.pop(key, None)

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

        asset_id = next(self._asset_ids)
        self._assets[asset_id] = AssetRecord(
            id=asset_id,
            filename=filename,
            title=title,
            content_type=content_type,
            url=f"{self._asset_base_url}/{asset_id}/{filename}",
            size=len(content),
            meta=dict(meta or {}),
        )
        self._asset_content[asset_id] = content

        log.debug("catalog_asset_created", asset_id=asset_id, filename=filename)
        return asset_id

    def get_asset(self, asset_id: int) -> Optional[AssetRecord]:
        record = self._assets.get(asset_id)
        return record.model_copy(deep=True) if record else None

    def get_asset_url(self, asset_id: int) -> Optional[str]:
        record = self._assets.get(asset_id)
        return record.url if record else None

    def find_asset_by_meta(self, key: str, value: str) -> Optional[int]:
        for record in self._assets.values():
            if record.meta.get(key) == value:
                return record.id
        return None

    def list_assets(self) -> list[AssetRecord]:
        return [record.model_copy(deep=True) for record in self._assets.values()]
