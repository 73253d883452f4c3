#!/usr/bin/env python3
# backend/hunt_registry/commands/rebuild_index.py
"""
Date index reconciliation command for the Hunt Registry.

Scans every Org document and rebuilds the App document's ``byDate`` index
and organization summaries from them. Run it after a partial failure left
``index_synced=false``, after a store migration, or on a schedule.

Usage:
    python -m hunt_registry.commands.rebuild_index

    # Also archive hunts completed before a date
    python -m hunt_registry.commands.rebuild_index --archive-before 2025-01-01
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from hunt_registry.config import settings
from hunt_registry.core.errors import RegistryError
from hunt_registry.core.registry import AdapterRegistry, RegistryConfig
from hunt_registry.services import DateIndexMaintainer, OrgRegistryService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(levelname)s: %(message)s'
)
logger = logging.getLogger("hunt_registry.commands.rebuild_index")


async def rebuild_index(registry: AdapterRegistry, archive_before: Optional[str] = None) -> int:
    """
    Rebuild byDate and organization summaries; optionally archive old hunts first.

    Returns:
        0 on success, 1 if any organization could not be read
    """
    if archive_before:
        archived = await OrgRegistryService(registry).archive_completed_hunts(archive_before)
        logger.info(f"✓ Archived {len(archived.archived)} hunt(s) completed before {archived.cutoff}")
        for slug, error in archived.failed.items():
            logger.error(f"✗ Could not archive hunts of {slug}: {error}")

    report = await DateIndexMaintainer(registry.get_org_repo()).rebuild()

    logger.info("=" * 70)
    logger.info(f"Organizations scanned: {report.orgs_scanned}")
    logger.info(f"Index entries:         {report.entries_indexed} on {report.dates_indexed} dates")
    logger.info(f"Summaries added:       {', '.join(report.summaries_added) or '-'}")
    logger.info(f"Summaries removed:     {', '.join(report.summaries_removed) or '-'}")
    logger.info(f"App document changed:  {report.changed}")
    logger.info("=" * 70)

    for slug in report.orgs_skipped:
        logger.error(f"✗ Skipped unreadable organization {slug}; run validate_and_repair")
    return 1 if report.orgs_skipped else 0


async def run(store: str, archive_before: Optional[str]) -> int:
    registry = AdapterRegistry(RegistryConfig(primary_store=store, media_provider="mock"))
    try:
        return await rebuild_index(registry, archive_before)
    except RegistryError as e:
        logger.error(f"ERROR: Index rebuild failed: {e.message}")
        return 1
    finally:
        await registry.aclose()


def main():
    """Main entry point for the command."""
    parser = argparse.ArgumentParser(
        description="Rebuild the byDate index and organization summaries from Org documents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument(
        "--store",
        choices=["blob", "table", "mock"],
        default=settings.primary_store,
        help="Store to rebuild (default: PRIMARY_STORE)"
    )
    parser.add_argument(
        "--archive-before",
        metavar="YYYY-MM-DD",
        help="Archive completed hunts that ended before this date first"
    )

    args = parser.parse_args()

    try:
        sys.exit(asyncio.run(run(args.store, args.archive_before)))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(1)


if __name__ == "__main__":
    main()
