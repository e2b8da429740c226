"""Provider mode: modification tracking, listings and the HTTP API."""

from taxonomy_sync.provider.api import create_app
from taxonomy_sync.provider.auth import ApplicationPasswordAuthenticator, Principal
from taxonomy_sync.provider.listing_service import ListingService, parse_modified_since
from taxonomy_sync.provider.modification_tracker import ModificationTracker
from taxonomy_sync.provider.service import ProviderService, build_provider, load_seed_file, seed_catalog

__all__ = [
    "ApplicationPasswordAuthenticator",
    "ListingService",
    "ModificationTracker",
    "Principal",
    "ProviderService",
    "build_provider",
    "create_app",
    "load_seed_file",
    "parse_modified_since",
    "seed_catalog",
]
