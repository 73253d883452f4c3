# backend/hunt_registry/services/org_registry_service.py
"""
Organization Registry Service.

Business operations over the storage ports: organizations, hunts and their
media. The service owns the rules the adapters deliberately leave out:

- hunt ids are ``<slug>-<YYYYMMDD>`` and unique within an organization
- hunt status only moves forward (scheduled -> active -> completed -> archived)
- after an Org write succeeds, the App document's organization summary and
  ``byDate`` index are updated in a second, separate write

The second write can fail after the first has landed. Such operations still
succeed and report ``registry_synced=False`` / ``index_synced=False``;
``DateIndexMaintainer.rebuild()`` repairs the drift later.

Usage:
    service = OrgRegistryService(registry)
    created = await service.create_organization(CreateOrgRequest(...))
    hunt = await service.create_hunt(created.org_slug, CreateHuntRequest(...))
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Literal, Optional, Union
from zoneinfo import ZoneInfo

from pydantic import Field

from ..config import settings
from ..core.errors import (
    AlreadyExistsError,
    BackendUnavailableError,
    ConcurrencyError,
    NotFoundError,
    RegistryError,
    StatusTransitionError,
    ValidationError,
)
from ..core.models import (
    HUNT_STATUS_ORDER,
    AppDocument,
    Contact,
    DualWriteResult,
    ETagged,
    Event,
    EventSummary,
    Hunt,
    HuntAccess,
    HuntAudit,
    HuntModeration,
    HuntScoring,
    HuntStatus,
    HuntUploads,
    MediaUploadOptions,
    MediaUploadResponse,
    OrganizationSummary,
    OrgDocument,
    OrgListFilter,
    OrgProfile,
    OrgRollup,
    OrgSettings,
    OrgSummary,
    RegistryModel,
    Stop,
    Team,
    UploadCounters,
)
from ..core.models.org_models import HuntLocation, HuntTime, Rules
from ..core.ports import ETAG_ABSENT, EventRepoPort, MediaPort, OrgRepoPort
from ..core.ports.media import MediaFile
from ..core.registry import AdapterRegistry
from ..core.storage.base import org_key
from ..core.utils.text_utils import is_valid_slug, parse_iso_date, slugify, utc_now_iso
from .concurrency import OptimisticResult, run_optimistic
from .date_index import DateIndexMaintainer, dates_between

logger = logging.getLogger("hunt_registry.services.org_registry")

# Failures of the follow-up App write that leave the Org write standing.
SYNC_ERRORS = (ConcurrencyError, BackendUnavailableError)


# =============================================================================
# REQUESTS
# =============================================================================

class CreateOrgRequest(RegistryModel):
    org_name: str = Field(..., min_length=1)
    org_slug: Optional[str] = None
    contacts: List[Contact] = Field(..., min_length=1)
    settings: Optional[OrgSettings] = None


class UpdateOrgRequest(RegistryModel):
    org_name: Optional[str] = Field(default=None, min_length=1)
    contacts: Optional[List[Contact]] = None
    settings: Optional[Dict[str, Any]] = None


class CreateHuntRequest(RegistryModel):
    name: str = Field(..., min_length=1)
    start_date: str
    end_date: str
    created_by: str
    location: Optional[HuntLocation] = None
    time: Optional[HuntTime] = None
    visibility: Literal["public", "invite", "private"] = "public"
    pin_required: bool = False
    base_per_stop: int = 10
    bonus_creative: int = 5
    moderation_required: bool = False
    teams: Optional[List[Team]] = None
    stops: List[Stop] = Field(default_factory=list)
    rules: Optional[Rules] = None


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class OrgWriteResult:
    org_slug: str
    org: OrgDocument
    etag: str
    write_result: Optional[DualWriteResult] = None
    registry_synced: bool = True


@dataclass
class HuntWriteResult:
    org_slug: str
    hunt: Hunt
    etag: str
    changed: bool = True
    write_result: Optional[DualWriteResult] = None
    index_synced: bool = True


@dataclass
class ArchiveReport:
    cutoff: str
    archived: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)


@dataclass
class MediaUploadResult:
    media: MediaUploadResponse
    etag: Optional[str] = None
    counters_synced: bool = True


def hunt_id_for(name: str, start_date: str) -> str:
    """``<slug>-<YYYYMMDD>``, e.g. ``spring-scramble-20250412``."""
    day = parse_iso_date(start_date)
    if day is None:
        raise ValidationError("startDate must be YYYY-MM-DD", field_path="startDate", value=start_date)
    slug = slugify(name)
    if not slug:
        raise ValidationError("Hunt name has no usable characters", field_path="name", value=name)
    return f"{slug}-{day.strftime('%Y%m%d')}"


def registry_today() -> date:
    """Today's date in the configured registry timezone."""
    return datetime.now(ZoneInfo(settings.default_timezone)).date()


def check_transition(hunt: Hunt, requested: HuntStatus) -> bool:
    """
    Returns True if ``requested`` moves the hunt forward, False if it is the
    current status.

    Raises:
        StatusTransitionError: ``requested`` is behind the current status
    """
    current_rank = HUNT_STATUS_ORDER.index(hunt.status)
    requested_rank = HUNT_STATUS_ORDER.index(requested)
    if requested_rank < current_rank:
        raise StatusTransitionError(hunt.id, hunt.status, requested)
    return requested_rank > current_rank


class OrgRegistryService:
    """
    Registry operations for organizations and hunts.

    Adapters are resolved from the registry on every call, so overrides and
    reconfiguration take effect immediately.
    """

    def __init__(self, registry: AdapterRegistry):
        self.registry = registry

    @property
    def org_repo(self) -> OrgRepoPort:
        return self.registry.get_org_repo()

    @property
    def event_repo(self) -> EventRepoPort:
        return self.registry.get_event_repo()

    @property
    def media(self) -> MediaPort:
        return self.registry.get_media()

    @property
    def date_index(self) -> DateIndexMaintainer:
        return DateIndexMaintainer(self.org_repo)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_app(self) -> ETagged[AppDocument]:
        return await self.org_repo.get_app()

    async def get_org(self, org_slug: str) -> ETagged[OrgDocument]:
        return await self.org_repo.get_org(org_slug)

    async def list_orgs(self, filter: Optional[OrgListFilter] = None) -> List[OrgSummary]:
        return await self.org_repo.list_orgs(filter)

    async def list_today(
        self, day: Optional[Union[str, date]] = None, org_filter: Optional[str] = None
    ) -> List[EventSummary]:
        """Events running on ``day``; defaults to today in the configured timezone."""
        if day is None:
            day = registry_today()
        elif isinstance(day, str) and parse_iso_date(day) is None:
            raise ValidationError("date must be YYYY-MM-DD", field_path="date", value=day)
        return await self.event_repo.list_today(day, org_filter)

    async def get_event(self, org_slug: str, hunt_id: str) -> Event:
        return await self.event_repo.get_event(org_slug, hunt_id)

    # -------------------------------------------------------------------------
    # Organizations
    # -------------------------------------------------------------------------

    def _build_org(self, org_slug: str, request: CreateOrgRequest) -> OrgDocument:
        org_settings = request.settings or OrgSettings(timezone=settings.default_timezone)
        return OrgDocument(
            updated_at=utc_now_iso(),
            org=OrgProfile(
                org_slug=org_slug,
                org_name=request.org_name,
                contacts=request.contacts,
                settings=org_settings,
            ),
            hunts=[],
        )

    async def _sync_org_summary(self, org: OrgDocument, created_at: Optional[str] = None) -> bool:
        """Add or refresh the App summary of ``org``; False if the App write failed."""
        slug = org.org.org_slug

        def mutate(app: AppDocument) -> bool:
            summary = app.find_organization(slug)
            email = org.org.contacts[0].email if org.org.contacts else None
            if summary is None:
                if email is None:
                    return False
                app.organizations.append(OrganizationSummary(
                    org_slug=slug,
                    org_name=org.org.org_name,
                    primary_contact_email=email,
                    created_at=created_at or utc_now_iso(),
                    org_blob_key=f"orgs/{slug}.json",
                    summary=OrgRollup(
                        hunts_total=len(org.hunts),
                        teams_common=list(org.org.settings.default_teams),
                    ),
                ))
                return True
            changed = False
            if summary.org_name != org.org.org_name:
                summary.org_name = org.org.org_name
                changed = True
            if email is not None and summary.primary_contact_email != email:
                summary.primary_contact_email = email
                changed = True
            return changed

        try:
            await run_optimistic(
                self.org_repo.get_app, mutate, self.org_repo.write_app, key=f"app summary {slug}"
            )
        except SYNC_ERRORS as e:
            logger.error(f"Organization {slug} saved but App summary update failed: {e}")
            return False
        return True

    async def create_organization(self, request: CreateOrgRequest) -> OrgWriteResult:
        """
        Create an Org document and register it in the App document.

        Raises:
            ValidationError: bad slug or payload
            AlreadyExistsError: an organization with this slug exists
        """
        org_slug = request.org_slug or slugify(request.org_name)
        if not is_valid_slug(org_slug):
            raise ValidationError(
                "orgSlug must be lowercase letters, digits and single hyphens",
                field_path="orgSlug",
                value=org_slug,
            )

        logger.info(f"Creating organization {org_slug} ({len(request.contacts)} contact(s))")
        org = self._build_org(org_slug, request)
        write_result = await self.org_repo.write_org(org_slug, org, ETAG_ABSENT)
        registry_synced = await self._sync_org_summary(org, created_at=org.updated_at)

        logger.info(f"Organization {org_slug} created (registry_synced={registry_synced})")
        return OrgWriteResult(
            org_slug=org_slug,
            org=org,
            etag=write_result.etag,
            write_result=write_result,
            registry_synced=registry_synced,
        )

    def _org_reader(self, org_slug: str, expected_etag: Optional[str]):
        async def read() -> ETagged[OrgDocument]:
            current = await self.org_repo.get_org(org_slug)
            if expected_etag is not None and current.etag != expected_etag:
                raise ConcurrencyError(org_key(org_slug), expected_etag)
            return current

        return read

    async def _update_org(self, org_slug: str, mutate, expected_etag: Optional[str], key: str) -> OptimisticResult:
        # A caller-supplied etag pins the document version: no retry on conflict.
        return await run_optimistic(
            self._org_reader(org_slug, expected_etag),
            mutate,
            lambda doc, etag: self.org_repo.write_org(org_slug, doc, etag),
            max_retries=0 if expected_etag is not None else None,
            key=key,
        )

    async def update_organization(
        self, org_slug: str, request: UpdateOrgRequest, expected_etag: Optional[str] = None
    ) -> OrgWriteResult:
        """
        Apply a profile update: name, contact list, and settings (merged key by key).

        Raises:
            NotFoundError: no such organization
            ConcurrencyError: ``expected_etag`` is stale, or conflicts exhausted the retry budget
        """

        def mutate(org: OrgDocument) -> bool:
            before = org.org.model_dump()
            if request.org_name is not None:
                org.org.org_name = request.org_name
            if request.contacts is not None:
                org.org.contacts = list(request.contacts)
            if request.settings:
                merged = org.org.settings.to_json_dict()
                merged.update(request.settings)
                org.org.settings = OrgSettings.model_validate(merged)
            return org.org.model_dump() != before

        result = await self._update_org(org_slug, mutate, expected_etag, key=org_key(org_slug))
        registry_synced = True
        if result.changed:
            registry_synced = await self._sync_org_summary(result.data)
            logger.info(f"Organization {org_slug} updated")

        return OrgWriteResult(
            org_slug=org_slug,
            org=result.data,
            etag=result.etag,
            write_result=result.write_result,
            registry_synced=registry_synced,
        )

    async def replace_organization(
        self, org_slug: str, data: Dict[str, Any], expected_etag: Optional[str] = None
    ) -> OrgWriteResult:
        """
        Write a whole Org document as given, conditionally when ``expected_etag`` is set.

        The ``byDate`` index is not touched; run ``rebuild_index`` after bulk
        replacements that change hunt dates.
        """
        write_result = await self.org_repo.write_org(org_slug, data, expected_etag)
        org = (await self.org_repo.get_org(org_slug)).data
        registry_synced = await self._sync_org_summary(org)
        return OrgWriteResult(
            org_slug=org_slug,
            org=org,
            etag=write_result.etag,
            write_result=write_result,
            registry_synced=registry_synced,
        )

    # -------------------------------------------------------------------------
    # Hunts
    # -------------------------------------------------------------------------

    def _build_hunt(self, request: CreateHuntRequest) -> Hunt:
        return Hunt(
            id=hunt_id_for(request.name, request.start_date),
            slug=slugify(request.name),
            name=request.name,
            start_date=request.start_date,
            end_date=request.end_date,
            time=request.time,
            location=request.location,
            status="scheduled",
            access=HuntAccess(visibility=request.visibility, pin_required=request.pin_required),
            scoring=HuntScoring(base_per_stop=request.base_per_stop, bonus_creative=request.bonus_creative),
            moderation=HuntModeration(required=request.moderation_required),
            teams=request.teams,
            stops=list(request.stops),
            rules=request.rules,
            audit=HuntAudit(created_by=request.created_by, created_at=utc_now_iso()),
        )

    async def create_hunt(self, org_slug: str, request: CreateHuntRequest) -> HuntWriteResult:
        """
        Add a hunt to an organization, then index it by date.

        Concurrent creations of different hunts are merged: a conflicting
        write is re-applied on the fresh document.

        Raises:
            NotFoundError: no such organization
            AlreadyExistsError: the organization already has a hunt with this id
            ValidationError: bad dates or payload
        """
        hunt = self._build_hunt(request)
        dates_between(hunt.start_date, hunt.end_date)
        logger.info(f"Creating hunt {org_slug}/{hunt.id} ({hunt.start_date}..{hunt.end_date})")

        def mutate(org: OrgDocument) -> bool:
            existing = org.find_hunt(hunt.id)
            if existing is None:
                org.hunts.append(hunt)
                return True
            if existing.audit == hunt.audit:
                # Our own earlier write landed despite an unknown outcome.
                return False
            raise AlreadyExistsError(f"{org_key(org_slug)}/hunts/{hunt.id}")

        result = await self._update_org(org_slug, mutate, None, key=f"{org_key(org_slug)} +hunt")
        index_synced = await self._index(
            lambda index: index.add_hunt(org_slug, hunt, hunts_total=len(result.data.hunts)),
            f"{org_slug}/{hunt.id}",
        )

        logger.info(f"Hunt {org_slug}/{hunt.id} created (index_synced={index_synced})")
        return HuntWriteResult(
            org_slug=org_slug,
            hunt=hunt,
            etag=result.etag,
            changed=result.changed,
            write_result=result.write_result,
            index_synced=index_synced,
        )

    async def _index(self, update, label: str) -> bool:
        try:
            await update(self.date_index)
        except SYNC_ERRORS as e:
            logger.error(f"Hunt {label} saved but byDate index update failed: {e}")
            return False
        return True

    async def update_hunt_status(
        self,
        org_slug: str,
        hunt_id: str,
        status: HuntStatus,
        expected_etag: Optional[str] = None,
    ) -> HuntWriteResult:
        """
        Move a hunt forward through its lifecycle. Re-requesting the current
        status is a no-op.

        Raises:
            NotFoundError: no such organization or hunt
            StatusTransitionError: ``status`` is behind the current status
            ConcurrencyError: ``expected_etag`` is stale, or conflicts exhausted the retry budget
        """
        updated: Dict[str, Hunt] = {}

        def mutate(org: OrgDocument) -> bool:
            hunt = org.find_hunt(hunt_id)
            if hunt is None:
                raise NotFoundError(f"{org_key(org_slug)}/hunts/{hunt_id}")
            updated["hunt"] = hunt
            # Checked against the freshly read status on every attempt.
            if not check_transition(hunt, status):
                return False
            hunt.status = status
            if status == "archived" and hunt.audit is not None:
                hunt.audit.archived_at = utc_now_iso()
            return True

        result = await self._update_org(org_slug, mutate, expected_etag, key=f"{org_key(org_slug)} status")
        if result.changed:
            logger.info(f"Hunt {org_slug}/{hunt_id} is now {status}")
        return HuntWriteResult(
            org_slug=org_slug,
            hunt=updated["hunt"],
            etag=result.etag,
            changed=result.changed,
            write_result=result.write_result,
        )

    async def reschedule_hunt(
        self,
        org_slug: str,
        hunt_id: str,
        start_date: str,
        end_date: str,
        expected_etag: Optional[str] = None,
    ) -> HuntWriteResult:
        """
        Change a hunt's dates and move its ``byDate`` entries. The hunt id is kept.

        Raises:
            NotFoundError: no such organization or hunt
            ValidationError: bad dates, or the hunt is completed or archived
        """
        dates_between(start_date, end_date)
        previous: Dict[str, Any] = {}

        def mutate(org: OrgDocument) -> bool:
            hunt = org.find_hunt(hunt_id)
            if hunt is None:
                raise NotFoundError(f"{org_key(org_slug)}/hunts/{hunt_id}")
            previous["hunt"] = hunt
            if hunt.start_date == start_date and hunt.end_date == end_date:
                return False
            if hunt.status in ("completed", "archived"):
                raise ValidationError(
                    f"Hunt '{hunt_id}' is {hunt.status} and cannot be rescheduled",
                    field_path="status",
                    value=hunt.status,
                )
            previous["dates"] = (hunt.start_date, hunt.end_date)
            hunt.start_date = start_date
            hunt.end_date = end_date
            return True

        result = await self._update_org(org_slug, mutate, expected_etag, key=f"{org_key(org_slug)} schedule")
        index_synced = True
        if result.changed:
            old_start, old_end = previous["dates"]
            index_synced = await self._index(
                lambda index: index.move_hunt(org_slug, hunt_id, old_start, old_end, start_date, end_date),
                f"{org_slug}/{hunt_id}",
            )
            logger.info(f"Hunt {org_slug}/{hunt_id} rescheduled to {start_date}..{end_date}")

        return HuntWriteResult(
            org_slug=org_slug,
            hunt=previous["hunt"],
            etag=result.etag,
            changed=result.changed,
            write_result=result.write_result,
            index_synced=index_synced,
        )

    async def archive_completed_hunts(self, cutoff: Optional[Union[str, date]] = None) -> ArchiveReport:
        """
        Archive every completed hunt that ended before ``cutoff``
        (default: 30 days ago). Archived hunts stay in their Org document.
        """
        if cutoff is None:
            cutoff = registry_today() - timedelta(days=30)
        cutoff_str = cutoff.isoformat() if isinstance(cutoff, date) else cutoff
        if parse_iso_date(cutoff_str) is None:
            raise ValidationError("cutoff must be YYYY-MM-DD", field_path="cutoff", value=cutoff_str)

        report = ArchiveReport(cutoff=cutoff_str)
        for org_slug in await self.org_repo.list_org_slugs():
            archived: List[str] = []

            def mutate(org: OrgDocument) -> bool:
                archived.clear()
                for hunt in org.hunts:
                    if hunt.status == "completed" and hunt.end_date < cutoff_str:
                        hunt.status = "archived"
                        if hunt.audit is not None:
                            hunt.audit.archived_at = utc_now_iso()
                        archived.append(f"{org_slug}/{hunt.id}")
                return bool(archived)

            try:
                await self._update_org(org_slug, mutate, None, key=f"{org_key(org_slug)} archive")
            except RegistryError as e:
                logger.error(f"Archiving hunts of {org_slug} failed: {e}")
                report.failed[org_slug] = e.message
                continue
            report.archived.extend(archived)

        logger.info(f"Archived {len(report.archived)} hunt(s) completed before {cutoff_str}")
        return report

    # -------------------------------------------------------------------------
    # Media
    # -------------------------------------------------------------------------

    async def _check_upload(self, content_type: str, size: Optional[int], is_video: bool) -> None:
        app = (await self.org_repo.get_app()).data
        features = app.app.features
        if not features.enable_photo_upload:
            raise ValidationError("Uploads are disabled", field_path="app.features.enablePhotoUpload")
        if is_video and not (features.model_extra or {}).get("enableVideoUpload", True):
            raise ValidationError("Video uploads are disabled", field_path="app.features.enableVideoUpload")
        limits = app.app.limits
        if limits is None:
            return
        if content_type not in limits.allowed_media_types:
            raise ValidationError(
                f"Media type {content_type} is not allowed",
                field_path="contentType",
                value=content_type,
            )
        if size is not None and size > limits.max_upload_size_mb * 1024 * 1024:
            raise ValidationError(
                f"Upload exceeds {limits.max_upload_size_mb} MB",
                field_path="size",
                value=size,
            )

    async def upload_hunt_media(
        self,
        org_slug: str,
        hunt_id: str,
        file: MediaFile,
        options: MediaUploadOptions,
        size: Optional[int] = None,
    ) -> MediaUploadResult:
        """
        Upload a photo or video for a hunt and count it in the hunt's upload summary.

        The media goes to the MediaPort; only the returned pointer metadata
        touches the Org document. Counter updates that fail after a
        successful upload are logged and reported as ``counters_synced=False``.

        Raises:
            NotFoundError: no such organization or hunt
            ValidationError: uploads disabled, media type not allowed, or file too large
        """
        await self.get_event(org_slug, hunt_id)
        if size is None and isinstance(file, (bytes, bytearray)):
            size = len(file)
        is_video = options.content_type.startswith("video/")
        await self._check_upload(options.content_type, size, is_video)

        if is_video:
            media = await self.media.upload_video(file, options)
        else:
            media = await self.media.upload_image(file, options)
        logger.info(f"Uploaded {media.media_type} {media.public_id} for {org_slug}/{hunt_id}")

        def bump(counters: UploadCounters) -> None:
            counters.total += 1
            if is_video:
                counters.videos += 1
            else:
                counters.photos += 1
            counters.last_uploaded_at = media.created_at
            counters.last_media_id = media.public_id

        def mutate(org: OrgDocument) -> bool:
            hunt = org.find_hunt(hunt_id)
            if hunt is None:
                raise NotFoundError(f"{org_key(org_slug)}/hunts/{hunt_id}")
            if hunt.uploads is None:
                hunt.uploads = HuntUploads()
            # Keyed on the media id so a re-applied update counts once.
            if hunt.uploads.summary.last_media_id == media.public_id:
                return False
            bump(hunt.uploads.summary)
            for team in hunt.teams or []:
                if team.name == options.team_name:
                    if team.uploads is None:
                        team.uploads = UploadCounters()
                    bump(team.uploads)
            return True

        try:
            result = await self._update_org(org_slug, mutate, None, key=f"{org_key(org_slug)} uploads")
        except SYNC_ERRORS as e:
            logger.error(f"Media {media.public_id} uploaded but counters of {org_slug}/{hunt_id} not updated: {e}")
            return MediaUploadResult(media=media, counters_synced=False)
        return MediaUploadResult(media=media, etag=result.etag)

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------

    async def health_status(self) -> Dict[str, Any]:
        """Health of the org repository and media provider, plus an overall verdict."""
        components: Dict[str, Any] = {}
        for name, check in (("org_repo", self.org_repo.health_check), ("media", self.media.health_check)):
            try:
                components[name] = await check()
            except RegistryError as e:
                components[name] = {"status": "unhealthy", "error": e.message}

        statuses = {c.get("status") for c in components.values()}
        if statuses <= {"healthy"}:
            overall = "healthy"
        elif "unhealthy" in statuses and components["org_repo"].get("status") == "unhealthy":
            overall = "unhealthy"
        else:
            overall = "degraded"
        return {"status": overall, "components": components, "registry": self.registry.status()}
