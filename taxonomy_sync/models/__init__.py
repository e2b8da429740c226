"""Data models for the taxonomy sync system."""

from taxonomy_sync.models.config import (
    AppConfig,
    ClientConfig,
    LoggingConfig,
    ProviderConfig,
    ProviderUser,
    StorageConfig,
)
from taxonomy_sync.models.taxonomy import (
    ATTRIBUTE_PREFIX,
    AttributeDefinition,
    AttributeTerm,
    ImageAssetRecord,
    SyncLinkRecord,
    TermMeta,
    strip_prefix,
    taxonomy_name,
)

__all__ = [
    "ATTRIBUTE_PREFIX",
    "AttributeDefinition",
    "AttributeTerm",
    "TermMeta",
    "SyncLinkRecord",
    "ImageAssetRecord",
    "strip_prefix",
    "taxonomy_name",
    "AppConfig",
    "ClientConfig",
    "LoggingConfig",
    "ProviderConfig",
    "ProviderUser",
    "StorageConfig",
]
