#!/usr/bin/env python3
# backend/hunt_registry/commands/migrate_store.py
"""
Store-to-store migration command for the Hunt Registry.

Copies the App document and every Org document from one store to another
(for example blob -> table), migrating each document to the current schema
on the way. Used together with the dual-write flags for a staged cutover:

    1. SECONDARY_STORE=blob PRIMARY_STORE=table DUAL_WRITE=true READ_NEW_STORE_FIRST=true
    2. python -m hunt_registry.commands.migrate_store --source blob --target table
    3. turn off DUAL_WRITE / READ_NEW_STORE_FIRST once the target is complete

Usage:
    # Copy documents the target does not have yet
    python -m hunt_registry.commands.migrate_store --source blob --target table

    # Overwrite documents that already exist in the target
    python -m hunt_registry.commands.migrate_store --source blob --target table --overwrite

    # Dry run (shows what would be migrated)
    python -m hunt_registry.commands.migrate_store --source blob --target table --dry-run

Note:
    - Without --overwrite, documents already in the target are skipped, so
      anything written through dual write is never clobbered by older data
    - Run rebuild_index against the target afterwards if hunts changed
      during the copy
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, field
from typing import Dict, List

from hunt_registry.core.errors import (
    AlreadyExistsError,
    BackendUnavailableError,
    MigrationIntegrityError,
    NotFoundError,
    RegistryError,
    ValidationError,
)
from hunt_registry.core.ports import ETAG_ABSENT
from hunt_registry.core.registry import AdapterRegistry, RegistryConfig

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("hunt_registry.commands.migrate_store")

STORES = ["blob", "table", "mock"]


@dataclass
class StoreMigrationReport:
    migrated: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


async def migrate_store(
    source_registry: AdapterRegistry,
    target_registry: AdapterRegistry,
    overwrite: bool = False,
    dry_run: bool = False,
) -> StoreMigrationReport:
    """
    Copy all documents from the source store's org repo to the target's.

    Args:
        source_registry: Registry whose org repo is read
        target_registry: Registry whose org repo is written
        overwrite: Replace documents that already exist in the target
        dry_run: Read and migrate only

    Returns:
        StoreMigrationReport
    """
    source = source_registry.get_org_repo()
    target = target_registry.get_org_repo()
    report = StoreMigrationReport()
    expected = None if overwrite else ETAG_ABSENT

    if not dry_run:
        await target.initialize()

    async def copy(label: str, load, store) -> None:
        try:
            document = await load()
        except (ValidationError, MigrationIntegrityError) as e:
            logger.error(f"✗ {label}: cannot migrate source document: {e.message}")
            report.failed[label] = e.message
            return
        if document is None:
            logger.warning(f"{label} not found in source, skipping")
            report.skipped.append(label)
            return
        if dry_run:
            logger.info(f"DRY RUN: would copy {label}")
            report.migrated.append(label)
            return
        try:
            await store(document)
        except AlreadyExistsError:
            logger.info(f"{label} already exists in target, skipping")
            report.skipped.append(label)
            return
        except (ValidationError, BackendUnavailableError) as e:
            logger.error(f"✗ {label}: write failed: {e.message}")
            report.failed[label] = e.message
            return
        logger.info(f"✓ Copied {label}")
        report.migrated.append(label)

    async def load_app():
        found = await source.find_app()
        return found.data if found else None

    await copy("app", load_app, lambda doc: target.upsert_app(doc, expected_etag=expected))

    slugs = await source.list_org_slugs()
    logger.info(f"Found {len(slugs)} organizations in source ({source.BACKEND})")
    for slug in slugs:
        async def load_org(slug=slug):
            try:
                return (await source.get_org(slug)).data
            except NotFoundError:
                return None

        await copy(
            f"orgs/{slug}",
            load_org,
            lambda doc, slug=slug: target.upsert_org(slug, doc, expected_etag=expected),
        )

    return report


async def run(source: str, target: str, overwrite: bool, dry_run: bool) -> int:
    logger.info(f"Migrating {source} -> {target}{' (DRY RUN)' if dry_run else ''}")
    source_registry = AdapterRegistry(RegistryConfig(primary_store=source, media_provider="mock"))
    target_registry = AdapterRegistry(RegistryConfig(primary_store=target, media_provider="mock"))
    try:
        report = await migrate_store(source_registry, target_registry, overwrite=overwrite, dry_run=dry_run)
    except RegistryError as e:
        logger.error(f"ERROR: Migration aborted: {e.message}")
        return 1
    finally:
        await source_registry.aclose()
        await target_registry.aclose()

    logger.info("=" * 70)
    logger.info(
        f"migrated: {len(report.migrated)}  skipped: {len(report.skipped)}  failed: {len(report.failed)}"
    )
    logger.info("=" * 70)
    return 0 if report.ok else 1


def main():
    """Main entry point for the command."""
    parser = argparse.ArgumentParser(
        description="Copy registry documents from one store to another",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument("--source", choices=STORES, required=True, help="Store to read from")
    parser.add_argument("--target", choices=STORES, required=True, help="Store to write to")
    parser.add_argument("--overwrite", action="store_true", help="Replace documents already in the target")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be migrated")

    args = parser.parse_args()
    if args.source == args.target:
        parser.error("--source and --target must differ")

    try:
        sys.exit(asyncio.run(run(args.source, args.target, args.overwrite, args.dry_run)))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(1)


if __name__ == "__main__":
    main()
