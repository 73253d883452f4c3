#!/usr/bin/env python3
# backend/hunt_registry/commands/init_app.py
"""
App document initialization command for the Hunt Registry.

Creates the storage containers of a store (bucket for blob, tables for
table) and seeds the default App document when the store has none.

Usage:
    # Initialize the configured primary store
    python -m hunt_registry.commands.init_app

    # Initialize a specific store
    python -m hunt_registry.commands.init_app --store table

    # Replace an existing App document with the seeded default
    python -m hunt_registry.commands.init_app --force

Note:
    - Safe to run multiple times: an existing App document is left alone
      unless --force is given
    - --force discards organizations summaries and the byDate index; run
      rebuild_index afterwards
"""

import argparse
import asyncio
import logging
import sys

from hunt_registry.config import settings
from hunt_registry.core.errors import AlreadyExistsError, RegistryError
from hunt_registry.core.ports import ETAG_ABSENT
from hunt_registry.core.registry import AdapterRegistry, RegistryConfig
from hunt_registry.core.schemas import seed_app_document

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(levelname)s: %(message)s'
)
logger = logging.getLogger("hunt_registry.commands.init_app")


async def init_app(registry: AdapterRegistry, force: bool = False) -> int:
    """
    Initialize the registry's org store and seed its App document.

    Args:
        registry: Registry whose org repo is initialized
        force: Overwrite an existing App document

    Returns:
        0 on success, 1 on failure
    """
    org_repo = registry.get_org_repo()
    store = org_repo.BACKEND
    logger.info(f"Initializing {store} store...")

    try:
        await org_repo.initialize()
        logger.info(f"✓ {store} store containers ready")

        existing = await org_repo.find_app()
        if existing is not None and not force:
            logger.info(
                f"✓ App document already present (schema {existing.data.schema_version}, "
                f"{len(existing.data.organizations)} organizations)"
            )
            return 0

        if existing is not None:
            logger.warning("Replacing existing App document (--force)")
        try:
            etag = await org_repo.upsert_app(
                seed_app_document(), expected_etag=None if force else ETAG_ABSENT
            )
        except AlreadyExistsError:
            logger.info("✓ App document was created concurrently; nothing to do")
            return 0

        logger.info(f"✓ Seeded App document (etag {etag})")
        return 0

    except RegistryError as e:
        logger.error(f"ERROR: Failed to initialize {store} store: {e.message}")
        logger.error("If the stored App document is corrupt, run validate_and_repair")
        return 1


async def run(store: str, force: bool) -> int:
    registry = AdapterRegistry(RegistryConfig(primary_store=store, media_provider="mock"))
    try:
        return await init_app(registry, force=force)
    finally:
        await registry.aclose()


def main():
    """Main entry point for the command."""
    parser = argparse.ArgumentParser(
        description="Initialize a Hunt Registry store and seed the App document",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument(
        "--store",
        choices=["blob", "table", "mock"],
        default=settings.primary_store,
        help="Store to initialize (default: PRIMARY_STORE)"
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing App document with the seeded default"
    )

    args = parser.parse_args()

    try:
        sys.exit(asyncio.run(run(args.store, args.force)))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(1)


if __name__ == "__main__":
    main()
