"""
Tests for OrgRegistryService: organization and hunt lifecycle, the
follow-up App writes, and media uploads.
"""

from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from hunt_registry.core.errors import (
    AlreadyExistsError,
    BackendUnavailableError,
    ConcurrencyError,
    NotFoundError,
    StatusTransitionError,
    ValidationError,
)
from hunt_registry.core.models import MediaUploadOptions, OrgListFilter
from hunt_registry.services import UpdateOrgRequest
from hunt_registry.services.date_index import DateIndexMaintainer
from hunt_registry.services.org_registry_service import hunt_id_for


@pytest_asyncio.fixture
async def org(service, org_request):
    return await service.create_organization(org_request())


@pytest_asyncio.fixture
async def hunt(service, org, hunt_request):
    return await service.create_hunt("vail-resort", hunt_request())


class TestHuntIds:

    def test_hunt_id(self):
        assert hunt_id_for("Spring Scramble!", "2025-04-12") == "spring-scramble-20250412"

    def test_bad_inputs(self):
        with pytest.raises(ValidationError):
            hunt_id_for("Spring", "12/04/2025")
        with pytest.raises(ValidationError):
            hunt_id_for("!!!", "2025-04-12")


class TestOrganizations:

    @pytest.mark.asyncio
    async def test_create_registers_summary(self, service, org):
        assert org.registry_synced
        assert org.org.org.settings.default_teams == ["RED", "GREEN", "BLUE", "YELLOW", "ORANGE"]

        orgs = await service.list_orgs()
        assert [o.org_slug for o in orgs] == ["vail-resort"]
        assert orgs[0].primary_contact_email == "ada@vail-resort.example.com"

    @pytest.mark.asyncio
    async def test_slug_derived_from_name(self, service, org_request):
        request = org_request()
        request.org_slug = None
        request.org_name = "Beaver Creek Hunts"

        result = await service.create_organization(request)

        assert result.org_slug == "beaver-creek-hunts"

    @pytest.mark.asyncio
    async def test_invalid_slug(self, service, org_request):
        request = org_request()
        request.org_slug = "Not A Slug"
        with pytest.raises(ValidationError):
            await service.create_organization(request)

    @pytest.mark.asyncio
    async def test_duplicate(self, service, org, org_request):
        with pytest.raises(AlreadyExistsError):
            await service.create_organization(org_request())

    @pytest.mark.asyncio
    async def test_update_refreshes_summary(self, service, org):
        request = UpdateOrgRequest.model_validate({"orgName": "Vail Mountain", "settings": {"timezone": "UTC"}})

        result = await service.update_organization("vail-resort", request)

        assert result.org.org.org_name == "Vail Mountain"
        assert result.org.org.settings.timezone == "UTC"
        assert result.org.org.settings.default_teams == ["RED", "GREEN", "BLUE", "YELLOW", "ORANGE"]
        assert (await service.list_orgs(OrgListFilter(name_contains="mountain")))[0].org_slug == "vail-resort"

    @pytest.mark.asyncio
    async def test_update_with_stale_etag(self, service, org):
        await service.update_organization("vail-resort", UpdateOrgRequest(org_name="First"))

        with pytest.raises(ConcurrencyError):
            await service.update_organization("vail-resort", UpdateOrgRequest(org_name="Second"), expected_etag=org.etag)

        assert (await service.get_org("vail-resort")).data.org.org_name == "First"

    @pytest.mark.asyncio
    async def test_noop_update_keeps_etag(self, service, org):
        result = await service.update_organization("vail-resort", UpdateOrgRequest(org_name="Vail Resort"))
        assert result.etag == org.etag

    @pytest.mark.asyncio
    async def test_replace(self, service, org):
        body = org.org.to_json_dict()
        body["org"]["orgName"] = "Replaced"

        result = await service.replace_organization("vail-resort", body, expected_etag=org.etag)

        assert result.org.org.org_name == "Replaced"
        assert (await service.get_app()).data.find_organization("vail-resort").org_name == "Replaced"

    @pytest.mark.asyncio
    async def test_summary_failure_reported(self, service, org_request):
        failing = AsyncMock(side_effect=BackendUnavailableError("mock", "down"))
        with patch.object(service.org_repo, "write_app", failing):
            result = await service.create_organization(org_request("acme", "Acme"))

        assert not result.registry_synced
        assert (await service.get_org("acme")).data.org.org_name == "Acme"


class TestHunts:

    @pytest.mark.asyncio
    async def test_create_indexes_dates(self, service, hunt):
        assert hunt.hunt.id == "spring-scramble-20250412"
        assert hunt.index_synced

        for day in ("2025-04-12", "2025-04-13"):
            events = await service.list_today(day)
            assert [e.hunt_id for e in events] == ["spring-scramble-20250412"]
        assert await service.list_today("2025-04-14") == []

        app = (await service.get_app()).data
        assert app.find_organization("vail-resort").summary.hunts_total == 1

    @pytest.mark.asyncio
    async def test_create_defaults(self, hunt):
        created = hunt.hunt
        assert created.status == "scheduled"
        assert created.audit.created_by == "ada@vail-resort.example.com"
        assert created.scoring.base_per_stop == 10

    @pytest.mark.asyncio
    async def test_duplicate_hunt(self, service, hunt, hunt_request):
        with pytest.raises(AlreadyExistsError):
            await service.create_hunt("vail-resort", hunt_request())

    @pytest.mark.asyncio
    async def test_unknown_org(self, service, hunt_request):
        with pytest.raises(NotFoundError):
            await service.create_hunt("nobody", hunt_request())

    @pytest.mark.asyncio
    async def test_bad_dates_rejected_before_write(self, service, org, hunt_request):
        with pytest.raises(ValidationError):
            await service.create_hunt("vail-resort", hunt_request(start="2025-04-12", end="2025-04-01"))
        assert (await service.get_org("vail-resort")).etag == org.etag

    @pytest.mark.asyncio
    async def test_index_failure_keeps_hunt(self, service, org, hunt_request):
        with patch.object(
            DateIndexMaintainer, "add_hunt", AsyncMock(side_effect=ConcurrencyError("app"))
        ):
            result = await service.create_hunt("vail-resort", hunt_request())

        assert not result.index_synced
        assert (await service.get_org("vail-resort")).data.find_hunt(result.hunt.id) is not None
        assert await service.list_today("2025-04-12") == []

        report = await service.date_index.rebuild()
        assert report.changed
        assert len(await service.list_today("2025-04-12")) == 1

    @pytest.mark.asyncio
    async def test_list_today_rejects_bad_date(self, service):
        with pytest.raises(ValidationError):
            await service.list_today("04/12/2025")

    @pytest.mark.asyncio
    async def test_get_event(self, service, hunt):
        event = await service.get_event("vail-resort", hunt.hunt.id)
        assert event.hunt.name == "Spring Scramble"


class TestStatusTransitions:

    @pytest.mark.asyncio
    async def test_forward(self, service, hunt):
        result = await service.update_hunt_status("vail-resort", hunt.hunt.id, "active")
        assert result.changed
        assert result.hunt.status == "active"

    @pytest.mark.asyncio
    async def test_skip_forward(self, service, hunt):
        result = await service.update_hunt_status("vail-resort", hunt.hunt.id, "completed")
        assert result.hunt.status == "completed"

    @pytest.mark.asyncio
    async def test_backwards_rejected(self, service, hunt):
        await service.update_hunt_status("vail-resort", hunt.hunt.id, "completed")
        with pytest.raises(StatusTransitionError) as exc_info:
            await service.update_hunt_status("vail-resort", hunt.hunt.id, "active")
        assert exc_info.value.current == "completed"

    @pytest.mark.asyncio
    async def test_same_status_is_noop(self, service, hunt):
        first = await service.update_hunt_status("vail-resort", hunt.hunt.id, "active")
        second = await service.update_hunt_status("vail-resort", hunt.hunt.id, "active")
        assert not second.changed
        assert second.etag == first.etag

    @pytest.mark.asyncio
    async def test_archive_sets_timestamp(self, service, hunt):
        result = await service.update_hunt_status("vail-resort", hunt.hunt.id, "archived")
        assert result.hunt.audit.archived_at is not None

    @pytest.mark.asyncio
    async def test_unknown_hunt(self, service, org):
        with pytest.raises(NotFoundError):
            await service.update_hunt_status("vail-resort", "nope-20250101", "active")


class TestReschedule:

    @pytest.mark.asyncio
    async def test_moves_index(self, service, hunt):
        result = await service.reschedule_hunt("vail-resort", hunt.hunt.id, "2025-05-01", "2025-05-01")

        assert result.changed and result.index_synced
        assert result.hunt.id == "spring-scramble-20250412"
        assert await service.list_today("2025-04-12") == []
        assert [e.start_date for e in await service.list_today("2025-05-01")] == ["2025-05-01"]

    @pytest.mark.asyncio
    async def test_same_dates_noop(self, service, hunt):
        result = await service.reschedule_hunt("vail-resort", hunt.hunt.id, "2025-04-12", "2025-04-13")
        assert not result.changed

    @pytest.mark.asyncio
    async def test_completed_hunt_rejected(self, service, hunt):
        await service.update_hunt_status("vail-resort", hunt.hunt.id, "completed")
        with pytest.raises(ValidationError):
            await service.reschedule_hunt("vail-resort", hunt.hunt.id, "2025-05-01", "2025-05-02")


class TestArchive:

    @pytest.mark.asyncio
    async def test_archives_old_completed_hunts(self, service, org, hunt_request):
        old = await service.create_hunt("vail-resort", hunt_request(name="Old", start="2025-01-10", end="2025-01-11"))
        recent = await service.create_hunt("vail-resort", hunt_request(name="Recent", start="2025-03-01", end="2025-03-01"))
        open_hunt = await service.create_hunt("vail-resort", hunt_request(name="Open", start="2025-01-05", end="2025-01-05"))
        for created in (old, recent):
            await service.update_hunt_status("vail-resort", created.hunt.id, "completed")

        report = await service.archive_completed_hunts("2025-02-01")

        assert report.archived == [f"vail-resort/{old.hunt.id}"]
        assert report.failed == {}
        org_doc = (await service.get_org("vail-resort")).data
        assert org_doc.find_hunt(old.hunt.id).status == "archived"
        assert org_doc.find_hunt(recent.hunt.id).status == "completed"
        assert org_doc.find_hunt(open_hunt.hunt.id).status == "scheduled"
        # Archived hunts stay listed by date.
        assert [e.status for e in await service.list_today("2025-01-10")] == ["archived"]

    @pytest.mark.asyncio
    async def test_bad_cutoff(self, service):
        with pytest.raises(ValidationError):
            await service.archive_completed_hunts("soon")


class TestMediaUpload:

    @pytest.mark.asyncio
    async def test_photo_counted(self, service, hunt):
        options = MediaUploadOptions(
            org_slug="vail-resort", hunt_id=hunt.hunt.id, stop_id="s1", content_type="image/jpeg",
        )

        result = await service.upload_hunt_media("vail-resort", hunt.hunt.id, b"\xff\xd8data", options)

        assert result.counters_synced
        assert result.media.media_type == "image"
        summary = (await service.get_event("vail-resort", hunt.hunt.id)).hunt.uploads.summary
        assert (summary.total, summary.photos, summary.videos) == (1, 1, 0)
        assert summary.last_uploaded_at == result.media.created_at
        assert summary.last_media_id == result.media.public_id

    @pytest.mark.asyncio
    async def test_uploads_in_same_millisecond_both_counted(self, service, hunt, monkeypatch):
        monkeypatch.setattr(
            "hunt_registry.core.storage.memory_adapter.utc_now_iso", lambda: "2025-04-12T10:00:00.000Z",
        )
        options = MediaUploadOptions(org_slug="vail-resort", hunt_id=hunt.hunt.id, content_type="image/jpeg")

        first = await service.upload_hunt_media("vail-resort", hunt.hunt.id, b"\xff\xd8one", options)
        second = await service.upload_hunt_media("vail-resort", hunt.hunt.id, b"\xff\xd8two", options)

        assert first.media.created_at == second.media.created_at
        assert first.counters_synced and second.counters_synced
        summary = (await service.get_event("vail-resort", hunt.hunt.id)).hunt.uploads.summary
        assert (summary.total, summary.photos) == (2, 2)

    @pytest.mark.asyncio
    async def test_team_counters(self, service, org, hunt_request):
        teams = [{"name": "RED", "captain": {"firstName": "Ada", "lastName": "L"}}]
        created = await service.create_hunt("vail-resort", hunt_request(teams=teams))
        options = MediaUploadOptions(
            org_slug="vail-resort", hunt_id=created.hunt.id, team_name="RED", content_type="video/mp4",
        )

        await service.upload_hunt_media("vail-resort", created.hunt.id, b"\x00\x00mp4", options)

        team = (await service.get_event("vail-resort", created.hunt.id)).hunt.teams[0]
        assert (team.uploads.total, team.uploads.videos) == (1, 1)

    @pytest.mark.asyncio
    async def test_disallowed_type(self, service, hunt):
        options = MediaUploadOptions(org_slug="vail-resort", hunt_id=hunt.hunt.id, content_type="application/pdf")
        with pytest.raises(ValidationError) as exc_info:
            await service.upload_hunt_media("vail-resort", hunt.hunt.id, b"%PDF", options)
        assert exc_info.value.field_path == "contentType"

    @pytest.mark.asyncio
    async def test_too_large(self, service, hunt):
        options = MediaUploadOptions(org_slug="vail-resort", hunt_id=hunt.hunt.id, content_type="image/png")
        with pytest.raises(ValidationError) as exc_info:
            await service.upload_hunt_media("vail-resort", hunt.hunt.id, b"x", options, size=500 * 1024 * 1024)
        assert exc_info.value.field_path == "size"

    @pytest.mark.asyncio
    async def test_unknown_hunt(self, service, org):
        options = MediaUploadOptions(org_slug="vail-resort", hunt_id="nope", content_type="image/png")
        with pytest.raises(NotFoundError):
            await service.upload_hunt_media("vail-resort", "nope", b"x", options)


class TestHealth:

    @pytest.mark.asyncio
    async def test_healthy(self, service):
        health = await service.health_status()
        assert health["status"] == "healthy"
        assert set(health["components"]) == {"org_repo", "media"}

    @pytest.mark.asyncio
    async def test_degraded_media(self, service):
        with patch.object(service.media, "health_check", AsyncMock(return_value={"status": "unhealthy"})):
            health = await service.health_status()
        assert health["status"] == "degraded"
