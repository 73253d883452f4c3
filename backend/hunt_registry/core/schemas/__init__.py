"""
Schema versions, migrations and pre-write validation.

Importing this package builds the process-wide version registry and
migration engine and checks both migration chains; a missing step fails
the import.
"""

from .app_migrations import register_app_migrations, seed_app_document
from .migrations import Migration, MigrationEngine, MigrationResult
from .org_migrations import register_org_migrations
from .validation import validate_app_document, validate_org_document
from .versions import SchemaVersionRegistry, schema_registry

migration_engine = MigrationEngine(schema_registry)
register_app_migrations(migration_engine)
register_org_migrations(migration_engine)
for _doc_type in ("app", "org"):
    migration_engine.validate_chain(_doc_type)

__all__ = [
    "Migration",
    "MigrationEngine",
    "MigrationResult",
    "SchemaVersionRegistry",
    "migration_engine",
    "schema_registry",
    "seed_app_document",
    "validate_app_document",
    "validate_org_document",
]
