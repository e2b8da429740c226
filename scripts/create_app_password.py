#!/usr/bin/env python3
"""Generate an application password for a provider API user.

Prints the clear-text password once (give it to the client site) and a
``provider.users`` entry carrying only its SHA-256 hash for the provider
configuration.

Usage:
    python scripts/create_app_password.py USERNAME [--capability manage_catalog]
"""

import argparse
import sys

import yaml

from taxonomy_sync.models.config import MANAGE_CATALOG_CAPABILITY
from taxonomy_sync.provider.auth import generate_application_password, hash_application_password


def build_user_entry(username: str, password: str, capabilities: list[str]) -> dict:
    return {
        "username": username,
        "password_hashes": [hash_application_password(password)],
        "capabilities": capabilities,
    }


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate an application password")
    parser.add_argument("username", type=str, help="Provider username")
    parser.add_argument(
        "--capability",
        action="append",
        dest="capabilities",
        default=None,
        help=f"Capability to grant (default: {MANAGE_CATALOG_CAPABILITY}); repeatable",
    )
    args = parser.parse_args()

    capabilities = args.capabilities or [MANAGE_CATALOG_CAPABILITY]
    password = generate_application_password()

    print("Application password (shown once):")
    print(f"  {password}")
    print()
    print("Add this entry under provider.users in the provider configuration:")
    print(yaml.safe_dump([build_user_entry(args.username, password, capabilities)], sort_keys=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
