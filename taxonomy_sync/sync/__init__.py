"""Client-side synchronization of attribute definitions, terms and swatch images"""

from taxonomy_sync.sync.image_cache import ImageDedupCache
from taxonomy_sync.sync.models import (
    AttributeCounts,
    ConnectionStatus,
    ImageResolution,
    SyncSummary,
    TermCounts,
)
from taxonomy_sync.sync.sync_client import SyncClient, build_sync_client
from taxonomy_sync.sync.term_reconciler import TermReconciler

__all__ = [
    "AttributeCounts",
    "ConnectionStatus",
    "ImageDedupCache",
    "ImageResolution",
    "SyncClient",
    "SyncSummary",
    "TermCounts",
    "TermReconciler",
    "build_sync_client",
]
