"""
Schema Version Registry.

Declares every known schema version per document type as an explicit,
tagged pydantic variant. ``0.9.0`` is the loose legacy layout, ``1.0.0`` and
``1.1.0`` share the current structure under their own version tags, and
``1.2.0`` is current.

Usage:
    from hunt_registry.core.schemas import schema_registry

    schema = schema_registry.get_schema("org", "1.1.0")
    latest = schema_registry.get_latest_version("app")
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Tuple, Type, Union

from pydantic import BaseModel, model_validator

from ..models import AppDocument, AppDocumentBody, OrgDocument, OrgDocumentBody, RegistryModel

DocType = Literal["app", "org"]

SEMVER_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")

LEGACY_VERSION = "0.9.0"


def version_key(version: str) -> Tuple[int, ...]:
    return tuple(int(part) for part in version.split("."))


# =============================================================================
# TAGGED VARIANTS
# =============================================================================

class LegacyAppDocument(RegistryModel):
    """Flat pre-1.0 App layout (``appName``, ``orgs``, ``dateIndex`` ...)."""
    schema_version: Literal["0.9.0"]
    app_name: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    features: Optional[Dict[str, Any]] = None
    orgs: List[Dict[str, Any]] = []
    date_index: Optional[Dict[str, List[Dict[str, Any]]]] = None


class AppDocumentV100(AppDocumentBody):
    schema_version: Literal["1.0.0"]


class AppDocumentV110(AppDocumentBody):
    schema_version: Literal["1.1.0"]


class LegacyStop(RegistryModel):
    hints: Optional[List[Union[str, Dict[str, Any]]]] = None
    requirements: Optional[List[Dict[str, Any]]] = None


class LegacyHunt(RegistryModel):
    """Pre-1.0 hunt. Only the nested shapes the 1.0.0 step reads into are typed."""
    time: Optional[Dict[str, Any]] = None
    location: Optional[Dict[str, Any]] = None
    access: Optional[Dict[str, Any]] = None
    scoring: Optional[Dict[str, Any]] = None
    moderation: Optional[Dict[str, Any]] = None
    rules: Optional[Dict[str, Any]] = None
    team_captain: Optional[Dict[str, Any]] = None
    teams: Optional[List[Dict[str, Any]]] = None
    stops: Optional[List[LegacyStop]] = None


class LegacyOrgDocument(RegistryModel):
    """Flat pre-1.0 Org layout (``slug``, ``name``, ``contact`` ...)."""
    schema_version: Literal["0.9.0"]
    org_slug: Optional[str] = None
    slug: Optional[str] = None
    org_name: Optional[str] = None
    name: Optional[str] = None
    contact: Optional[Dict[str, Any]] = None
    contacts: Optional[List[Dict[str, Any]]] = None
    hunts: List[LegacyHunt] = []

    @model_validator(mode="after")
    def _require_identity(self):
        if not (self.org_slug or self.slug):
            raise ValueError("legacy organization has neither orgSlug nor slug")
        return self


class OrgDocumentV100(OrgDocumentBody):
    schema_version: Literal["1.0.0"]


class OrgDocumentV110(OrgDocumentBody):
    schema_version: Literal["1.1.0"]


# =============================================================================
# REGISTRY
# =============================================================================

@dataclass
class SchemaVersionInfo:
    version: str
    schema: Type[BaseModel]
    deprecated: bool = False
    migration_target: Optional[str] = None
    description: str = ""


class SchemaVersionRegistry:
    """Ordered catalogue of schema versions per document type."""

    def __init__(self):
        self._versions: Dict[str, Dict[str, SchemaVersionInfo]] = {}

    def register_version(
        self,
        doc_type: str,
        version: str,
        schema: Type[BaseModel],
        deprecated: bool = False,
        migration_target: Optional[str] = None,
        description: str = "",
    ) -> None:
        if not SEMVER_PATTERN.match(version):
            raise ValueError(f"Invalid schema version '{version}' for {doc_type}")
        versions = self._versions.setdefault(doc_type, {})
        if version in versions:
            raise ValueError(f"Schema version {doc_type}@{version} already registered")
        versions[version] = SchemaVersionInfo(
            version=version,
            schema=schema,
            deprecated=deprecated,
            migration_target=migration_target,
            description=description,
        )

    def _info(self, doc_type: str, version: str) -> Optional[SchemaVersionInfo]:
        return self._versions.get(doc_type, {}).get(version)

    def has_version(self, doc_type: str, version: str) -> bool:
        return self._info(doc_type, version) is not None

    def get_schema(self, doc_type: str, version: str) -> Optional[Type[BaseModel]]:
        info = self._info(doc_type, version)
        return info.schema if info else None

    def get_versions(self, doc_type: str) -> List[str]:
        return sorted(self._versions.get(doc_type, {}), key=version_key)

    def get_latest_version(self, doc_type: str) -> str:
        versions = self.get_versions(doc_type)
        if not versions:
            raise KeyError(f"No schema versions registered for '{doc_type}'")
        return versions[-1]

    def get_next_version(self, doc_type: str, version: str) -> Optional[str]:
        versions = self.get_versions(doc_type)
        if version not in versions:
            return None
        index = versions.index(version)
        return versions[index + 1] if index + 1 < len(versions) else None

    def is_deprecated(self, doc_type: str, version: str) -> bool:
        info = self._info(doc_type, version)
        return bool(info and info.deprecated)

    def get_migration_target(self, doc_type: str, version: str) -> Optional[str]:
        info = self._info(doc_type, version)
        return info.migration_target if info else None

    @staticmethod
    def detect_version(raw: Any) -> Optional[str]:
        """Return the declared ``schemaVersion`` when it is a well-formed version string."""
        if not isinstance(raw, dict):
            return None
        version = raw.get("schemaVersion")
        if isinstance(version, str) and SEMVER_PATTERN.match(version):
            return version
        return None


def build_schema_registry() -> SchemaVersionRegistry:
    registry = SchemaVersionRegistry()

    registry.register_version(
        "app", "0.9.0", LegacyAppDocument, deprecated=True, migration_target="1.0.0",
        description="Legacy flat app layout",
    )
    registry.register_version(
        "app", "1.0.0", AppDocumentV100, deprecated=True, migration_target="1.1.0",
        description="Nested app section with organization registry",
    )
    registry.register_version(
        "app", "1.1.0", AppDocumentV110, deprecated=True, migration_target="1.2.0",
        description="Privacy and limits sections",
    )
    registry.register_version(
        "app", "1.2.0", AppDocument, description="Video uploads and extended feature flags",
    )

    registry.register_version(
        "org", "0.9.0", LegacyOrgDocument, deprecated=True, migration_target="1.0.0",
        description="Legacy flat organization layout",
    )
    registry.register_version(
        "org", "1.0.0", OrgDocumentV100, deprecated=True, migration_target="1.1.0",
        description="Nested org profile with hunts",
    )
    registry.register_version(
        "org", "1.1.0", OrgDocumentV110, deprecated=True, migration_target="1.2.0",
        description="Team and hunt upload tracking",
    )
    registry.register_version(
        "org", "1.2.0", OrgDocument, description="Typed stop requirements and assets",
    )
    return registry


schema_registry = build_schema_registry()
