"""Data models for synchronization results."""

from datetime import datetime

from pydantic import BaseModel, Field


class AttributeCounts(BaseModel):
    """Attribute-level outcome counters for one sync run."""

    created: int = Field(default=0, ge=0, description="Attributes created locally")
    updated: int = Field(default=0, ge=0, description="Existing attributes updated")
    failed: int = Field(
        default=0,
        ge=0,
        description="Attributes whose write or term fetch failed",
    )


class TermCounts(BaseModel):
    """Term-level outcome counters for one sync run, including swatch images."""

    created: int = Field(default=0, ge=0, description="Terms created locally")
    updated: int = Field(default=0, ge=0, description="Existing terms updated")
    failed: int = Field(default=0, ge=0, description="Terms whose reconciliation raised")
    images_sideloaded: int = Field(default=0, ge=0, description="Images downloaded and stored")
    images_failed: int = Field(default=0, ge=0, description="Image downloads that failed")


class SyncSummary(BaseModel):
    """Report of a sync run."""

    attributes: AttributeCounts = Field(default_factory=AttributeCounts)
    terms: TermCounts = Field(default_factory=TermCounts)
    errors: list[str] = Field(
        default_factory=list, description="Item-level errors absorbed during the run"
    )
    single_attribute_slug: str | None = Field(
        default=None, description="Attribute the run was scoped to, if any"
    )
    start_time: datetime = Field(..., description="Sync start timestamp")
    end_time: datetime = Field(..., description="Sync end timestamp")
    duration_seconds: float = Field(default=0.0, ge=0.0, description="Sync duration in seconds")

    @property
    def message(self) -> str:
        """Human readable one-line summary of the counters."""
        return (
            f"Sync complete. Attributes: {self.attributes.created} created, "
            f"{self.attributes.updated} updated, {self.attributes.failed} failed. "
            f"Terms: {self.terms.created} created, {self.terms.updated} updated, "
            f"{self.terms.failed} failed. "
            f"Images: {self.terms.images_sideloaded} sideloaded, "
            f"{self.terms.images_failed} failed."
        )

    @property
    def success(self) -> bool:
        """Check if sync completed without item-level failures."""
        return (
            self.attributes.failed == 0
            and self.terms.failed == 0
            and self.terms.images_failed == 0
        )


class ConnectionStatus(BaseModel):
    """Outcome of a connection test against the provider."""

    ok: bool
    message: str
    attribute_count: int | None = None


class ImageResolution(BaseModel):
    """Local asset resolved for a remote image URL."""

    asset_id: int
    sideloaded: bool = Field(
        default=False, description="True if the image was downloaded during this call"
    )
