"""Pydantic models for attribute definitions, terms and client-side sync records."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

ATTRIBUTE_PREFIX = "pa_"
WIRE_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def strip_prefix(slug: str) -> str:
    """Return the attribute slug without its taxonomy namespace prefix."""
    if slug.startswith(ATTRIBUTE_PREFIX):
        return slug[len(ATTRIBUTE_PREFIX) :]
    return slug


def taxonomy_name(slug: str) -> str:
    """Return the namespaced taxonomy name for an attribute slug (idempotent)."""
    return ATTRIBUTE_PREFIX + strip_prefix(slug)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime | None) -> str | None:
    """Render a timestamp in the wire format used for ``modified_gmt``."""
    if value is None:
        return None
    return ensure_utc(value).strftime(WIRE_TIMESTAMP_FORMAT)


class AttributeDefinition(BaseModel):
    """A named, typed axis of product variation (e.g. Color)."""

    id: int = Field(default=..., description="Attribute id, local to the system that owns it")
    name: str = Field(default=..., description="Human readable label")
    slug: str = Field(default=..., description="Namespaced slug, e.g. pa_color")
    type: str = Field(default="select", description="Attribute type, e.g. select")
    order_by: str = Field(default="menu_order", description="Term ordering rule")
    has_archives: bool = Field(default=False, description="Whether archive pages are enabled")
    modified_gmt: datetime | None = Field(
        default=None, description="Last tracked modification (UTC), None if never stamped"
    )

    @field_validator("modified_gmt")
    @classmethod
    def normalize_modified_gmt(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None

    @field_serializer("modified_gmt")
    def serialize_modified_gmt(self, v: datetime | None) -> str | None:
        return format_timestamp(v)

    @property
    def name_only(self) -> str:
        """Prefix-stripped slug used as the identity across systems."""
        return strip_prefix(self.slug)

    model_config = {
        "json_schema_extra": {
            "example": {
                "id": 3,
                "name": "Color",
                "slug": "pa_color",
                "type": "select",
                "order_by": "menu_order",
                "has_archives": False,
                "modified_gmt": "2024-01-15T14:30:00Z",
            }
        }
    }


class TermMeta(BaseModel):
    """Price and display metadata carried by an attribute term."""

    model_config = ConfigDict(populate_by_name=True)

    term_price: str = Field(default="", description="Price delta as a decimal string, or empty")
    term_suffix: str = Field(default="", alias="_term_suffix", description="Display suffix")
    thumbnail_id: int | None = Field(
        default=None, description="Provider-local asset id of the swatch image"
    )

    @field_validator("term_price", "term_suffix", mode="before")
    @classmethod
    def coerce_to_string(cls, v: Any) -> str:
        if v is None or v is False:
            return ""
        return str(v)

    @field_validator("thumbnail_id", mode="before")
    @classmethod
    def coerce_thumbnail_id(cls, v: Any) -> int | None:
        if v in (None, "", 0, "0"):
            return None
        return v


class AttributeTerm(BaseModel):
    """One value of an attribute definition (e.g. Red)."""

    id: int = Field(default=..., description="Term id, local to the system that owns it")
    name: str = Field(default=..., description="Term label")
    slug: str = Field(default=..., description="Term slug, unique within its attribute")
    description: str = Field(default="", description="Term description")
    meta: TermMeta = Field(default_factory=TermMeta, description="Price/suffix/thumbnail metadata")
    swatch_image_url: str | None = Field(default=None, description="Absolute swatch image URL")
    modified_gmt: datetime | None = Field(
        default=None, description="Last tracked modification (UTC), None if never stamped"
    )
    attribute_slug: str = Field(
        default="", description="Namespaced slug of the owning attribute (set by the client)"
    )

    @field_validator("description", mode="before")
    @classmethod
    def coerce_description(cls, v: Any) -> str:
        return "" if v is None else v

    @field_validator("swatch_image_url", mode="before")
    @classmethod
    def empty_url_is_none(cls, v: Any) -> str | None:
        if not v:
            return None
        return v

    @field_validator("modified_gmt")
    @classmethod
    def normalize_modified_gmt(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None

    @field_serializer("modified_gmt")
    def serialize_modified_gmt(self, v: datetime | None) -> str | None:
        return format_timestamp(v)

    @property
    def identity(self) -> tuple[str, str]:
        """Matching key across systems: (attribute slug, term slug)."""
        return (self.attribute_slug, self.slug)


class SyncLinkRecord(BaseModel):
    """Client-side bookkeeping written for every synced term."""

    local_term_id: int
    source_term_id: int
    last_synced_at: datetime | None = None


class ImageAssetRecord(BaseModel):
    """Mapping from a remote image URL to the local asset materialised for it."""

    source_url: str = Field(default=..., min_length=1)
    local_asset_id: int
