#!/usr/bin/env python3
# backend/hunt_registry/commands/validate_and_repair.py
"""
Schema validation and repair command for the Hunt Registry.

Reads every stored document, runs it through the migration engine and the
pre-write invariant checks, and writes back documents that had to be
migrated or repaired so the store holds current-schema documents only.

Reads never persist migrations on their own; this command is how a store
gets upgraded in place.

Usage:
    # Validate and repair the configured primary store
    python -m hunt_registry.commands.validate_and_repair

    # Report only
    python -m hunt_registry.commands.validate_and_repair --dry-run

    # Limit to some organizations
    python -m hunt_registry.commands.validate_and_repair --org vail-resort --org breck

Note:
    - Writes are conditional on the etag read, so concurrent edits are never
      overwritten; rerun the command if a document was modified meanwhile
    - Documents that fail validation are reported and left untouched
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from hunt_registry.config import settings
from hunt_registry.core.errors import (
    BackendUnavailableError,
    ConcurrencyError,
    MigrationIntegrityError,
    RegistryError,
    ValidationError,
)
from hunt_registry.core.registry import AdapterRegistry, RegistryConfig
from hunt_registry.core.schemas import migration_engine, validate_app_document, validate_org_document
from hunt_registry.core.storage import RawDocument

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(levelname)s: %(message)s'
)
logger = logging.getLogger("hunt_registry.commands.validate_and_repair")


@dataclass
class RepairReport:
    valid: List[str] = field(default_factory=list)
    repaired: List[str] = field(default_factory=list)
    pending: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


async def _check_document(
    report: RepairReport,
    label: str,
    doc_type: str,
    raw: RawDocument,
    validate: Callable[[Any], Any],
    write: Callable[[Any, str], Awaitable[str]],
    dry_run: bool,
) -> None:
    try:
        result = migration_engine.migrate(doc_type, raw.body)
        validate(result.document)
    except (ValidationError, MigrationIntegrityError) as e:
        logger.error(f"✗ {label}: {e.message}")
        report.failed[label] = e.message
        return

    if not result.migrated:
        logger.info(f"✓ {label} is valid (schema {result.from_version})")
        report.valid.append(label)
        return

    steps = ", ".join(result.migrations_applied) or "replaced with seeded default"
    if dry_run:
        logger.info(f"DRY RUN: would repair {label} ({steps})")
        report.pending.append(label)
        return

    try:
        etag = await write(result.document, raw.etag)
    except ConcurrencyError:
        logger.warning(f"✗ {label} was modified while repairing; rerun the command")
        report.failed[label] = "modified concurrently"
        return
    except (ValidationError, BackendUnavailableError) as e:
        logger.error(f"✗ {label}: repair write failed: {e.message}")
        report.failed[label] = e.message
        return
    logger.info(f"✓ Repaired {label} ({steps}), etag {etag}")
    report.repaired.append(label)


async def validate_and_repair(
    registry: AdapterRegistry,
    dry_run: bool = False,
    org_slugs: Optional[List[str]] = None,
) -> RepairReport:
    """
    Validate and repair the App document and Org documents of the registry's org store.

    Args:
        registry: Registry whose org repo is checked
        dry_run: Report without writing
        org_slugs: Organizations to check (default: every stored one)

    Returns:
        RepairReport
    """
    repo = registry.get_org_repo()
    report = RepairReport()

    raw_app = await repo.read_raw_app()
    if raw_app is None:
        logger.warning("No App document found; run init_app to seed one")
    else:
        await _check_document(
            report, "app", "app", raw_app,
            validate_app_document,
            lambda doc, etag: repo.upsert_app(doc, expected_etag=etag),
            dry_run,
        )

    for slug in org_slugs or await repo.list_org_slugs():
        label = f"orgs/{slug}"
        try:
            raw_org = await repo.read_raw_org(slug)
        except ValidationError as e:
            logger.error(f"✗ {label}: {e.message}")
            report.failed[label] = e.message
            continue
        if raw_org is None:
            logger.error(f"✗ {label} not found")
            report.failed[label] = "not found"
            continue
        await _check_document(
            report, label, "org", raw_org,
            lambda doc, slug=slug: validate_org_document(doc, org_slug=slug),
            lambda doc, etag, slug=slug: repo.upsert_org(slug, doc, expected_etag=etag),
            dry_run,
        )

    return report


async def run(store: str, dry_run: bool, org_slugs: Optional[List[str]]) -> RepairReport:
    registry = AdapterRegistry(RegistryConfig(primary_store=store, media_provider="mock"))
    try:
        return await validate_and_repair(registry, dry_run=dry_run, org_slugs=org_slugs)
    finally:
        await registry.aclose()


def main():
    """Main entry point for the command."""
    parser = argparse.ArgumentParser(
        description="Validate stored documents and repair them to the current schema",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument(
        "--store",
        choices=["blob", "table", "mock"],
        default=settings.primary_store,
        help="Store to check (default: PRIMARY_STORE)"
    )
    parser.add_argument("--dry-run", action="store_true", help="Report without writing")
    parser.add_argument(
        "--org",
        action="append",
        dest="orgs",
        help="Organization slug to check (repeatable; default: all)"
    )

    args = parser.parse_args()

    try:
        report = asyncio.run(run(args.store, args.dry_run, args.orgs))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(1)
    except RegistryError as e:
        logger.error(f"ERROR: {e.message}")
        sys.exit(1)

    logger.info("=" * 70)
    logger.info(
        f"valid: {len(report.valid)}  repaired: {len(report.repaired)}  "
        f"pending: {len(report.pending)}  failed: {len(report.failed)}"
    )
    logger.info("=" * 70)
    sys.exit(0 if report.ok else 1)


if __name__ == "__main__":
    main()
