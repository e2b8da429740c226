#!/usr/bin/env python3
"""Script to run the provider HTTP API.

Loads configuration, builds the catalog, the SQLite-backed modification
tracker and the authenticator, and serves the listings with uvicorn.

Usage:
    python scripts/run_provider.py [--config CONFIG_PATH] [--seed SEED_YAML]
"""

import argparse
import sys
from pathlib import Path

import structlog
import uvicorn

from taxonomy_sync.errors import TaxonomySyncError
from taxonomy_sync.provider.service import build_provider, load_seed_file
from taxonomy_sync.utils.config_loader import ConfigLoader
from taxonomy_sync.utils.logging_config import configure_logging_from_config

log = structlog.stdlib.get_logger()


def main() -> int:
    """Main entry point for the provider service.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = argparse.ArgumentParser(description="Serve attribute definitions and terms")
    parser.add_argument("--config", type=str, default=None, help="Path to configuration file")
    parser.add_argument(
        "--seed",
        type=str,
        default=None,
        help="YAML file with attributes and terms to load into the catalog",
    )
    args = parser.parse_args()

    try:
        config_loader = ConfigLoader()
        config = config_loader.load_config(args.config)

        configure_logging_from_config(config.logging)

        for warning in config_loader.validate_config(config):
            print(f"⚠️  {warning}")

        Path(config.storage.timestamp_db_path).parent.mkdir(parents=True, exist_ok=True)
        service = build_provider(config)

        if args.seed:
            load_seed_file(service.catalog, args.seed)
    except TaxonomySyncError as e:
        log.error("provider_startup_failed", error=e.message)
        print(f"❌ {e.message}")
        return 1

    log.info(
        "provider_starting",
        host=config.provider.host,
        port=config.provider.port,
        namespace=config.namespace,
    )
    uvicorn.run(service.app, host=config.provider.host, port=config.provider.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
