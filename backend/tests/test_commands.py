"""
Tests for the maintenance commands, run against in-memory stores.
"""

import json

import pytest

from hunt_registry.commands.init_app import init_app
from hunt_registry.commands.migrate_store import migrate_store
from hunt_registry.commands.rebuild_index import rebuild_index
from hunt_registry.commands.validate_and_repair import validate_and_repair
from hunt_registry.core.registry import AdapterRegistry, RegistryConfig
from hunt_registry.core.storage import MemoryOrgRepoAdapter, MemoryStore
from hunt_registry.core.storage.base import APP_KEY, encode_body
from hunt_registry.services import UpdateOrgRequest


def stored(store: MemoryStore, key: str) -> dict:
    payload, _ = store.get(key)
    return json.loads(payload)


@pytest.fixture
def target_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def target_registry(target_store, fast_retry):
    registry = AdapterRegistry(RegistryConfig(primary_store="mock", media_provider="mock"))
    registry.override("org_repo", MemoryOrgRepoAdapter(target_store, retry_policy=fast_retry))
    yield registry
    registry.reset()


class TestInitApp:

    @pytest.mark.asyncio
    async def test_seeds_empty_store(self, registry, memory_store):
        assert await init_app(registry) == 0
        assert stored(memory_store, APP_KEY)["schemaVersion"] == "1.2.0"

    @pytest.mark.asyncio
    async def test_existing_app_left_alone(self, registry, memory_store, service, org_request):
        await service.create_organization(org_request())
        before = memory_store.get(APP_KEY)

        assert await init_app(registry) == 0

        assert memory_store.get(APP_KEY) == before

    @pytest.mark.asyncio
    async def test_force_replaces(self, registry, memory_store, service, org_request):
        await service.create_organization(org_request())

        assert await init_app(registry, force=True) == 0

        assert stored(memory_store, APP_KEY)["organizations"] == []


class TestValidateAndRepair:

    @pytest.fixture
    def legacy_store(self, memory_store, legacy_app, legacy_org):
        memory_store.put(APP_KEY, encode_body(legacy_app))
        memory_store.put("orgs/vail-resort", encode_body(legacy_org))
        return memory_store

    @pytest.mark.asyncio
    async def test_repairs_legacy_documents(self, registry, legacy_store):
        report = await validate_and_repair(registry)

        assert report.ok
        assert report.repaired == ["app", "orgs/vail-resort"]
        assert stored(legacy_store, APP_KEY)["schemaVersion"] == "1.2.0"
        org = stored(legacy_store, "orgs/vail-resort")
        assert org["schemaVersion"] == "1.2.0"
        assert org["org"]["orgSlug"] == "vail-resort"

    @pytest.mark.asyncio
    async def test_second_run_finds_nothing_to_do(self, registry, legacy_store):
        await validate_and_repair(registry)

        report = await validate_and_repair(registry)

        assert report.repaired == []
        assert report.valid == ["app", "orgs/vail-resort"]

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, registry, legacy_store):
        report = await validate_and_repair(registry, dry_run=True)

        assert report.pending == ["app", "orgs/vail-resort"]
        assert stored(legacy_store, APP_KEY)["schemaVersion"] == "0.9.0"

    @pytest.mark.asyncio
    async def test_unreadable_documents_reported(self, registry, legacy_store, legacy_org):
        unversioned = dict(legacy_org, orgSlug="broken")
        unversioned.pop("schemaVersion")
        legacy_store.put("orgs/broken", encode_body(unversioned))
        legacy_store.put("orgs/garbled", b"{not json")

        report = await validate_and_repair(registry)

        assert not report.ok
        assert sorted(report.failed) == ["orgs/broken", "orgs/garbled"]
        assert "orgs/vail-resort" in report.repaired
        assert legacy_store.get("orgs/garbled")[0] == b"{not json"

    @pytest.mark.asyncio
    async def test_selected_orgs_only(self, registry, legacy_store):
        report = await validate_and_repair(registry, org_slugs=["missing"])

        assert report.failed == {"orgs/missing": "not found"}
        assert "orgs/vail-resort" not in report.repaired


class TestMigrateStore:

    @pytest.mark.asyncio
    async def test_copies_every_document(self, registry, target_registry, target_store, service, org_request, hunt_request):
        await service.create_organization(org_request())
        await service.create_hunt("vail-resort", hunt_request())

        report = await migrate_store(registry, target_registry)

        assert report.ok
        assert report.migrated == ["app", "orgs/vail-resort"]
        org = stored(target_store, "orgs/vail-resort")
        assert [h["id"] for h in org["hunts"]] == ["spring-scramble-20250412"]
        assert "2025-04-12" in stored(target_store, APP_KEY)["byDate"]

    @pytest.mark.asyncio
    async def test_migrates_legacy_documents_on_copy(self, registry, memory_store, target_registry, target_store, legacy_org):
        memory_store.put("orgs/vail-resort", encode_body(legacy_org))

        report = await migrate_store(registry, target_registry)

        assert report.skipped == ["app"]
        assert stored(target_store, "orgs/vail-resort")["schemaVersion"] == "1.2.0"
        assert stored(memory_store, "orgs/vail-resort")["schemaVersion"] == "0.9.0"

    @pytest.mark.asyncio
    async def test_existing_target_documents_kept(self, registry, target_registry, target_store, service, org_request):
        await service.create_organization(org_request())
        await migrate_store(registry, target_registry)
        await service.update_organization("vail-resort", UpdateOrgRequest(org_name="Vail Mountain"))

        report = await migrate_store(registry, target_registry)

        assert report.skipped == ["app", "orgs/vail-resort"]
        assert stored(target_store, "orgs/vail-resort")["org"]["orgName"] == "Vail Resort"

        report = await migrate_store(registry, target_registry, overwrite=True)

        assert report.migrated == ["app", "orgs/vail-resort"]
        assert stored(target_store, "orgs/vail-resort")["org"]["orgName"] == "Vail Mountain"

    @pytest.mark.asyncio
    async def test_dry_run(self, registry, target_registry, target_store, service, org_request):
        await service.create_organization(org_request())

        report = await migrate_store(registry, target_registry, dry_run=True)

        assert report.migrated == ["app", "orgs/vail-resort"]
        assert target_store.keys() == []


class TestRebuildIndex:

    @pytest.mark.asyncio
    async def test_restores_lost_index(self, registry, org_repo, service, org_request, hunt_request):
        await service.create_organization(org_request())
        await service.create_hunt("vail-resort", hunt_request())
        app = (await org_repo.get_app()).data
        app.by_date = {}
        await org_repo.upsert_app(app)

        assert await rebuild_index(registry) == 0

        events = await service.list_today("2025-04-13")
        assert [e.hunt_id for e in events] == ["spring-scramble-20250412"]

    @pytest.mark.asyncio
    async def test_unreadable_org_fails(self, registry, memory_store, legacy_org):
        unversioned = dict(legacy_org)
        unversioned.pop("schemaVersion")
        memory_store.put("orgs/vail-resort", encode_body(unversioned))

        assert await rebuild_index(registry) == 1

    @pytest.mark.asyncio
    async def test_archive_before(self, registry, service, org_request, hunt_request):
        await service.create_organization(org_request())
        await service.create_hunt("vail-resort", hunt_request())
        await service.update_hunt_status("vail-resort", "spring-scramble-20250412", "completed")

        assert await rebuild_index(registry, archive_before="2025-05-01") == 0

        event = await service.get_event("vail-resort", "spring-scramble-20250412")
        assert event.hunt.status == "archived"
