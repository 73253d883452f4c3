"""
Tests for the schema version registry and migration engine.

Covers the 0.9.0 -> 1.0.0 -> 1.1.0 -> 1.2.0 chains for both document types,
fallback behaviour for unversioned documents and chain integrity checks.
"""

import pytest

from hunt_registry.core.errors import MigrationIntegrityError, ValidationError
from hunt_registry.core.models import DEFAULT_TEAMS, AppDocument, OrgDocument
from hunt_registry.core.schemas import MigrationEngine, migration_engine, schema_registry
from hunt_registry.core.schemas.app_migrations import VIDEO_MEDIA_TYPES, register_app_migrations
from hunt_registry.core.schemas.migrations import TRANSIENT_KEYS
from hunt_registry.core.schemas.versions import SchemaVersionRegistry, build_schema_registry


class TestSchemaVersionRegistry:

    def test_versions_are_sorted_semver(self):
        assert schema_registry.get_versions("app") == ["0.9.0", "1.0.0", "1.1.0", "1.2.0"]
        assert schema_registry.get_versions("org") == ["0.9.0", "1.0.0", "1.1.0", "1.2.0"]

    def test_latest_and_next(self):
        assert schema_registry.get_latest_version("org") == "1.2.0"
        assert schema_registry.get_next_version("org", "1.0.0") == "1.1.0"
        assert schema_registry.get_next_version("org", "1.2.0") is None
        assert schema_registry.get_next_version("org", "7.0.0") is None

    def test_deprecation_metadata(self):
        assert schema_registry.is_deprecated("app", "0.9.0")
        assert not schema_registry.is_deprecated("app", "1.2.0")
        assert schema_registry.get_migration_target("app", "1.1.0") == "1.2.0"

    def test_current_schema_is_document_model(self):
        assert schema_registry.get_schema("app", "1.2.0") is AppDocument
        assert schema_registry.get_schema("org", "1.2.0") is OrgDocument

    @pytest.mark.parametrize("raw,expected", [
        ({"schemaVersion": "1.1.0"}, "1.1.0"),
        ({"schemaVersion": "v1"}, None),
        ({"schemaVersion": 1}, None),
        ({}, None),
        ([], None),
    ])
    def test_detect_version(self, raw, expected):
        assert SchemaVersionRegistry.detect_version(raw) == expected

    def test_duplicate_version_rejected(self):
        registry = build_schema_registry()
        with pytest.raises(ValueError):
            registry.register_version("app", "1.2.0", AppDocument)

    def test_malformed_version_rejected(self):
        with pytest.raises(ValueError):
            SchemaVersionRegistry().register_version("app", "1.2", AppDocument)


class TestMigrationChain:

    def test_chains_are_complete(self):
        migration_engine.validate_chain("app")
        migration_engine.validate_chain("org")

    def test_missing_step_detected(self):
        engine = MigrationEngine(build_schema_registry())
        with pytest.raises(MigrationIntegrityError) as exc_info:
            engine.validate_chain("org")
        assert "0.9.0" in exc_info.value.message

    def test_non_consecutive_step_rejected(self):
        engine = MigrationEngine(build_schema_registry())
        with pytest.raises(ValueError):
            engine.register_migration("app", "0.9.0", "1.2.0", lambda d: d)

    def test_duplicate_step_rejected(self):
        engine = MigrationEngine(build_schema_registry())
        register_app_migrations(engine)
        with pytest.raises(ValueError):
            engine.register_migration("app", "1.0.0", "1.1.0", lambda d: d)

    def test_needs_migration(self, app_v1_0_0):
        assert migration_engine.needs_migration("app", app_v1_0_0)
        assert not migration_engine.needs_migration("app", {"schemaVersion": "1.2.0"})


class TestAppMigration:

    def test_legacy_app_reaches_current_version(self, legacy_app):
        result = migration_engine.migrate("app", legacy_app)

        assert result.from_version == "0.9.0"
        assert result.migrations_applied == ["0.9.0->1.0.0", "1.0.0->1.1.0", "1.1.0->1.2.0"]
        app = result.document
        assert isinstance(app, AppDocument)
        assert app.schema_version == "1.2.0"
        assert app.app.metadata.name == "Vail Hunt"
        assert app.app.features.enable_map_page is True
        assert app.organizations[0].org_slug == "vail-resort"
        assert app.organizations[0].summary.hunts_total == 1
        assert app.by_date["2024-07-04"][0].hunt_id == "fourth-hunt-20240704"

    def test_legacy_leftovers_kept(self, legacy_app):
        app = migration_engine.migrate("app", legacy_app).document
        assert app.to_json_dict()["legacy"] == {"analytics": {"provider": "plausible"}}

    def test_v1_fields_preserved(self, app_v1_0_0):
        app = migration_engine.migrate("app", app_v1_0_0).document

        assert app.app.features.enable_blob_events is True
        assert app.app.features.enable_map_page is True
        assert app.app.defaults.timezone == "America/Denver"
        assert app.updated_at == app_v1_0_0["updatedAt"]

    def test_video_support_added(self, app_v1_0_0):
        body = migration_engine.migrate("app", app_v1_0_0).document.to_json_dict()

        assert body["app"]["features"]["enableVideoUpload"] is True
        assert body["app"]["limits"]["maxUploadSizeMB"] == 200
        for media_type in VIDEO_MEDIA_TYPES:
            assert media_type in body["app"]["limits"]["allowedMediaTypes"]
        assert "image/jpeg" in body["app"]["limits"]["allowedMediaTypes"]

    def test_larger_upload_limit_kept(self, app_v1_0_0):
        app_v1_0_0["schemaVersion"] = "1.1.0"
        app_v1_0_0["app"]["limits"] = {"maxUploadSizeMB": 500, "allowedMediaTypes": ["image/png"]}

        body = migration_engine.migrate("app", app_v1_0_0).document.to_json_dict()
        assert body["app"]["limits"]["maxUploadSizeMB"] == 500

    def test_current_document_is_not_migrated(self, app_v1_0_0):
        current = migration_engine.migrate("app", app_v1_0_0).document.to_json_dict()
        result = migration_engine.migrate("app", current)

        assert not result.migrated
        assert result.document.to_json_dict() == current

    def test_embedded_etag_is_stripped(self, app_v1_0_0):
        app_v1_0_0["etag"] = '"abc"'
        body = migration_engine.migrate("app", app_v1_0_0).document.to_json_dict()
        for key in TRANSIENT_KEYS:
            assert key not in body

    @pytest.mark.parametrize("version", [None, "3.0.0", "garbage"])
    def test_unversioned_app_falls_back_to_seed(self, version):
        raw = {"whatever": True}
        if version is not None:
            raw["schemaVersion"] = version
        result = migration_engine.migrate("app", raw)

        assert result.seeded
        assert result.migrated
        assert result.document.organizations == []
        assert result.document.by_date == {}

    def test_declared_version_mismatch_is_validation_error(self, app_v1_0_0):
        del app_v1_0_0["app"]
        with pytest.raises(ValidationError) as exc_info:
            migration_engine.migrate("app", app_v1_0_0)
        assert exc_info.value.field_path == "app"


class TestOrgMigration:

    def test_legacy_org_reaches_current_version(self, legacy_org):
        result = migration_engine.migrate("org", legacy_org)
        org = result.document

        assert isinstance(org, OrgDocument)
        assert org.schema_version == "1.2.0"
        assert org.org.org_slug == "vail-resort"
        assert org.org.org_name == "Vail Resort"
        assert org.org.contacts[0].email == "ops@vail.example.com"

    def test_legacy_org_gets_default_teams(self, legacy_org):
        org = migration_engine.migrate("org", legacy_org).document
        assert org.org.settings.default_teams == DEFAULT_TEAMS

    def test_legacy_hunt_shape(self, legacy_org):
        hunt = migration_engine.migrate("org", legacy_org).document.hunts[0]

        assert hunt.start_date == hunt.end_date == "2024-07-04"
        assert hunt.status == "scheduled"
        assert hunt.scoring.base_per_stop == 20
        assert hunt.uploads.summary.total == 0
        stop = hunt.stops[0]
        assert stop.id == "s1"
        assert stop.title == "Gondola"
        assert stop.lat == pytest.approx(39.64)
        assert [r.type for r in stop.requirements] == ["photo"]

    def test_team_upload_counters_added(self):
        raw = {
            "schemaVersion": "1.0.0",
            "updatedAt": "2024-09-01T00:00:00.000Z",
            "org": {"orgSlug": "breck", "orgName": "Breck", "contacts": []},
            "hunts": [{
                "id": "fall-20240901",
                "slug": "fall",
                "name": "Fall",
                "startDate": "2024-09-01",
                "endDate": "2024-09-01",
                "teams": [{"name": "RED", "captain": {"firstName": "A", "lastName": "B"}}],
            }],
        }
        hunt = migration_engine.migrate("org", raw).document.hunts[0]

        assert hunt.teams[0].uploads.total == 0
        assert hunt.uploads.store.blobs_prefix == "hunts/fall-20240901/uploads"

    def test_legacy_org_without_identity_is_rejected(self, legacy_org):
        del legacy_org["orgSlug"]
        with pytest.raises(ValidationError):
            migration_engine.migrate("org", legacy_org)

    @pytest.mark.parametrize("version", [None, "9.9.9"])
    def test_unversioned_org_is_integrity_error(self, legacy_org, version):
        legacy_org.pop("schemaVersion")
        if version is not None:
            legacy_org["schemaVersion"] = version
        with pytest.raises(MigrationIntegrityError) as exc_info:
            migration_engine.migrate("org", legacy_org)
        assert exc_info.value.doc_type == "org"

    def test_broken_step_output_is_integrity_error(self, legacy_org):
        registry = build_schema_registry()
        engine = MigrationEngine(registry)
        engine.register_migration("org", "0.9.0", "1.0.0", lambda d: {"schemaVersion": "1.0.0"})
        engine.register_migration("org", "1.0.0", "1.1.0", lambda d: d)
        engine.register_migration("org", "1.1.0", "1.2.0", lambda d: d)

        with pytest.raises(MigrationIntegrityError) as exc_info:
            engine.migrate("org", legacy_org)
        assert exc_info.value.from_version == "0.9.0"

    def test_failing_step_is_integrity_error(self, legacy_org):
        def explode(data):
            return data["missing"]

        engine = MigrationEngine(build_schema_registry())
        engine.register_migration("org", "0.9.0", "1.0.0", explode)
        engine.register_migration("org", "1.0.0", "1.1.0", lambda d: d)
        engine.register_migration("org", "1.1.0", "1.2.0", lambda d: d)

        with pytest.raises(MigrationIntegrityError) as exc_info:
            engine.migrate("org", legacy_org)
        assert exc_info.value.from_version == "0.9.0"
        assert "0.9.0->1.0.0" in exc_info.value.message

    @pytest.mark.parametrize("field,value,path", [
        ("time", "10:00", "hunts.0.time"),
        ("location", "Vail", "hunts.0.location"),
        ("stops", ["Gondola"], "hunts.0.stops.0"),
        ("teams", ["RED"], "hunts.0.teams.0"),
    ])
    def test_malformed_legacy_hunt_is_validation_error(self, legacy_org, field, value, path):
        legacy_org["hunts"][0][field] = value

        with pytest.raises(ValidationError) as exc_info:
            migration_engine.migrate("org", legacy_org)
        assert exc_info.value.field_path == path

    def test_malformed_legacy_contacts_is_validation_error(self, legacy_org):
        legacy_org["contacts"] = ["ops@vail.example.com"]

        with pytest.raises(ValidationError) as exc_info:
            migration_engine.migrate("org", legacy_org)
        assert exc_info.value.field_path == "contacts.0"
