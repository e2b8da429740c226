#!/usr/bin/env python3
"""
Attribute synchronization script for client mode.

This script pulls attribute definitions and terms from the configured
provider into the local catalog:
- Creates or updates attribute definitions
- Creates or updates their terms and term metadata
- Sideloads swatch images once per source URL

Usage:
    python scripts/sync_attributes.py [--config CONFIG_PATH] [--attribute SLUG]
    python scripts/sync_attributes.py --list
    python scripts/sync_attributes.py --test-connection
"""

import argparse
import sys

import structlog

from taxonomy_sync.errors import TaxonomySyncError
from taxonomy_sync.storage.sqlite_catalog_store import SQLiteCatalogStore
from taxonomy_sync.sync.models import SyncSummary
from taxonomy_sync.sync.sync_client import SyncClient, build_sync_client
from taxonomy_sync.utils.config_loader import ConfigLoader
from taxonomy_sync.utils.logging_config import configure_logging_from_config

log = structlog.stdlib.get_logger()


def build_client(config_path: str | None = None) -> SyncClient:
    """Load configuration, configure logging and wire a sync client.

    The local catalog lives in ``storage.catalog_db_path`` so repeated runs
    update what earlier runs created.
    """
    config_loader = ConfigLoader()
    config = config_loader.load_config(config_path)

    configure_logging_from_config(config.logging)

    for warning in config_loader.validate_config(config):
        print(f"Warning: {warning}")

    catalog = SQLiteCatalogStore(config.storage.catalog_db_path)
    return build_sync_client(config, catalog)


def print_summary(summary: SyncSummary) -> None:
    print("\n" + "=" * 60)
    print("SYNCHRONIZATION SUMMARY")
    print("=" * 60)
    print(f"Status: {'✓ SUCCESS' if summary.success else '⚠ COMPLETED WITH FAILURES'}")
    if summary.single_attribute_slug:
        print(f"Attribute: {summary.single_attribute_slug}")
    print(
        f"Attributes: {summary.attributes.created} created, "
        f"{summary.attributes.updated} updated, {summary.attributes.failed} failed"
    )
    print(
        f"Terms: {summary.terms.created} created, "
        f"{summary.terms.updated} updated, {summary.terms.failed} failed"
    )
    print(
        f"Images: {summary.terms.images_sideloaded} sideloaded, "
        f"{summary.terms.images_failed} failed"
    )
    print(f"Duration: {summary.duration_seconds:.2f} seconds")
    for error in summary.errors:
        print(f"  - {error}")
    print("=" * 60)


def main():
    """Main entry point for the sync script."""
    parser = argparse.ArgumentParser(
        description="Synchronize attribute definitions and terms from a provider"
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration file",
        default=None,
    )
    parser.add_argument(
        "--attribute",
        type=str,
        help="Only sync this attribute slug (e.g. pa_color)",
        default=None,
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List the provider's attributes without syncing",
    )
    parser.add_argument(
        "--test-connection",
        action="store_true",
        help="Check the provider connection and credentials",
    )

    args = parser.parse_args()

    try:
        client = build_client(args.config)

        if args.test_connection:
            status = client.test_connection()
            print(status.message)
            sys.exit(0 if status.ok else 1)

        if args.list:
            attributes = client.fetch_provider_attributes()
            for attribute in attributes:
                print(f"{attribute.slug:<30} {attribute.name}")
            sys.exit(0)

        summary = client.sync_attributes_and_terms(single_attribute_slug=args.attribute)
    except TaxonomySyncError as e:
        log.error("sync_script_failed", error=e.message)
        print(f"Status: ✗ FAILED\nError: {e.message}")
        sys.exit(1)

    print_summary(summary)
    print(summary.message)
    sys.exit(0)


if __name__ == "__main__":
    main()
