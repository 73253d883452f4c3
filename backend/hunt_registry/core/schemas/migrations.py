"""
Migration Engine.

Brings raw stored documents up to the current schema version by applying a
chain of single-step upgrades (``vN -> vN+1``). Steps are pure ``dict -> dict``
functions; the engine validates the raw document against its declared
version before the chain and against the current schema after it.

Failure modes:
    - Raw document does not match its declared version: ``ValidationError``
    - Chain output does not match the current schema: ``MigrationIntegrityError``
    - Missing/unknown version: the doc type's fallback (App seeds a default),
      otherwise ``MigrationIntegrityError``
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..errors import MigrationIntegrityError
from .validation import format_loc, parse_model
from .versions import SchemaVersionRegistry

logger = logging.getLogger("hunt_registry.migrations")

MigrationStep = Callable[[Dict[str, Any]], Dict[str, Any]]
FallbackFactory = Callable[[], Dict[str, Any]]

# Transport-level key some writers embedded in the document body.
TRANSIENT_KEYS = ("etag",)


@dataclass
class Migration:
    doc_type: str
    from_version: str
    to_version: str
    step: MigrationStep
    description: str = ""


@dataclass
class MigrationResult:
    document: BaseModel
    from_version: Optional[str]
    migrations_applied: List[str] = field(default_factory=list)
    seeded: bool = False

    @property
    def migrated(self) -> bool:
        return bool(self.migrations_applied) or self.seeded


class MigrationEngine:
    """Per-doc-type migration chains over a ``SchemaVersionRegistry``."""

    def __init__(self, versions: SchemaVersionRegistry):
        self.versions = versions
        self._migrations: Dict[str, Dict[str, Migration]] = {}
        self._fallbacks: Dict[str, FallbackFactory] = {}

    def register_migration(
        self,
        doc_type: str,
        from_version: str,
        to_version: str,
        step: MigrationStep,
        description: str = "",
    ) -> None:
        """
        Register the single upgrade step out of ``from_version``.

        Raises:
            ValueError: unknown versions, a non-consecutive step, or a second
                step out of the same version
        """
        for version in (from_version, to_version):
            if not self.versions.has_version(doc_type, version):
                raise ValueError(f"Unknown schema version {doc_type}@{version}")
        expected = self.versions.get_next_version(doc_type, from_version)
        if to_version != expected:
            raise ValueError(
                f"Migration {doc_type} {from_version}->{to_version} must target {expected}"
            )
        steps = self._migrations.setdefault(doc_type, {})
        if from_version in steps:
            raise ValueError(f"Migration out of {doc_type}@{from_version} already registered")
        steps[from_version] = Migration(doc_type, from_version, to_version, step, description)

    def register_fallback(self, doc_type: str, factory: FallbackFactory) -> None:
        """Document factory used when a stored version is missing or unknown."""
        self._fallbacks[doc_type] = factory

    def validate_chain(self, doc_type: str) -> None:
        """Every non-current version must have exactly one step to its successor."""
        versions = self.versions.get_versions(doc_type)
        steps = self._migrations.get(doc_type, {})
        missing = [v for v in versions[:-1] if v not in steps]
        if missing:
            raise MigrationIntegrityError(
                f"Migration chain for '{doc_type}' has no step out of {', '.join(missing)}",
                doc_type=doc_type,
            )
        latest = versions[-1] if versions else None
        if latest in steps:
            raise MigrationIntegrityError(
                f"Migration chain for '{doc_type}' upgrades past the current version {latest}",
                doc_type=doc_type,
            )

    def get_available_versions(self, doc_type: str) -> List[str]:
        return self.versions.get_versions(doc_type)

    def needs_migration(self, doc_type: str, raw: Dict[str, Any]) -> bool:
        version = self.versions.detect_version(raw)
        return version != self.versions.get_latest_version(doc_type)

    def migrate(self, doc_type: str, raw: Dict[str, Any]) -> MigrationResult:
        """
        Normalize a raw stored document to the current schema.

        Args:
            doc_type: "app" or "org"
            raw: Parsed JSON as stored

        Returns:
            MigrationResult with the typed current document
        """
        latest = self.versions.get_latest_version(doc_type)
        version = self.versions.detect_version(raw)

        if version is None or not self.versions.has_version(doc_type, version):
            return self._fallback(doc_type, raw, version)

        data = {k: v for k, v in raw.items() if k not in TRANSIENT_KEYS}
        declared = parse_model(
            self.versions.get_schema(doc_type, version),
            data,
            f"{doc_type} document does not match schema {version}",
        )
        if version == latest:
            return MigrationResult(document=declared, from_version=version)

        applied: List[str] = []
        data = copy.deepcopy(data)
        current = version
        steps = self._migrations.get(doc_type, {})
        while current != latest:
            migration = steps[current]
            try:
                data = migration.step(data)
            except Exception as exc:
                raise MigrationIntegrityError(
                    f"{doc_type} migration {migration.from_version}->{migration.to_version} failed: "
                    f"{type(exc).__name__}: {exc}",
                    doc_type=doc_type,
                    from_version=version,
                ) from exc
            data["schemaVersion"] = migration.to_version
            applied.append(f"{migration.from_version}->{migration.to_version}")
            current = migration.to_version

        current_schema = self.versions.get_schema(doc_type, latest)
        try:
            document = current_schema.model_validate(data)
        except PydanticValidationError as exc:
            first = exc.errors()[0]
            raise MigrationIntegrityError(
                f"{doc_type} document migrated from {version} fails schema {latest} "
                f"at {format_loc(first['loc'])}: {first['msg']}",
                doc_type=doc_type,
                from_version=version,
            ) from exc

        logger.info(f"Migrated {doc_type} document {version} -> {latest} ({', '.join(applied)})")
        return MigrationResult(document=document, from_version=version, migrations_applied=applied)

    def _fallback(self, doc_type: str, raw: Dict[str, Any], version: Optional[str]) -> MigrationResult:
        factory = self._fallbacks.get(doc_type)
        if factory is None:
            raise MigrationIntegrityError(
                f"{doc_type} document has {'unknown schema version ' + version if version else 'no schemaVersion'}",
                doc_type=doc_type,
                from_version=version,
            )
        logger.warning(
            f"{doc_type} document has {'unknown version ' + version if version else 'no version'}; "
            f"replacing with seeded default"
        )
        latest = self.versions.get_latest_version(doc_type)
        document = self.versions.get_schema(doc_type, latest).model_validate(factory())
        return MigrationResult(document=document, from_version=version, seeded=True)
