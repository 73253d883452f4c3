"""
Shared read/write pipeline for document-backed adapters.

Concrete adapters only move raw JSON bodies and etags in and out of their
backend (``_read_app``, ``_write_app``, ``_read_org``, ``_write_org``,
``_scan_org_slugs``). Everything else is common:

    read:  raw body -> migration engine -> typed document + etag
    write: pre-write validation -> serialize (stamps updatedAt) -> conditional write

No business rules live here: status transitions and ``byDate`` consistency
belong to the service layer.
"""

import json
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, TypeVar, Union

from ..errors import ConcurrencyError, MigrationIntegrityError, NotFoundError, ValidationError
from ..models import (
    AppDocument,
    ETagged,
    Event,
    EventSummary,
    OrgDocument,
    OrgListFilter,
    OrgSummary,
    RegistryModel,
)
from ..ports import ETAG_ABSENT, AppPayload, EventRepoPort, OrgPayload, OrgRepoPort
from ..schemas import (
    MigrationEngine,
    migration_engine,
    seed_app_document,
    validate_app_document,
    validate_org_document,
)
from ..utils.text_utils import utc_now_iso
from .retry import RetryPolicy, run_with_retry

logger = logging.getLogger("hunt_registry.storage")

T = TypeVar("T")

APP_KEY = "app"


def org_key(org_slug: str) -> str:
    return f"orgs/{org_slug}"


@dataclass
class RawDocument:
    """A stored JSON body with its backend etag."""
    body: Dict[str, Any]
    etag: str


def serialize_document(document: RegistryModel) -> Dict[str, Any]:
    """Persisted body: camelCase JSON with a fresh ``updatedAt`` and no embedded etag."""
    body = document.to_json_dict()
    body.pop("etag", None)
    body["updatedAt"] = utc_now_iso()
    return body


def encode_body(body: Dict[str, Any]) -> bytes:
    return json.dumps(body, separators=(",", ":"), sort_keys=True).encode("utf-8")


def decode_body(payload: Union[bytes, str], key: str) -> Dict[str, Any]:
    try:
        body = json.loads(payload)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Stored document '{key}' is not valid JSON: {e}", field_path=key) from e
    if not isinstance(body, dict):
        raise ValidationError(f"Stored document '{key}' is not a JSON object", field_path=key, value=type(body).__name__)
    return body


def normalize_day(day: Union[str, date]) -> str:
    return day.isoformat() if isinstance(day, date) else day


class DocumentOrgRepo(OrgRepoPort):
    """OrgRepoPort over raw-document primitives supplied by a subclass."""

    def __init__(self, engine: Optional[MigrationEngine] = None, retry_policy: Optional[RetryPolicy] = None):
        self.engine = engine or migration_engine
        self.retry_policy = retry_policy or RetryPolicy.from_settings()

    # -------------------------------------------------------------------------
    # Backend primitives
    # -------------------------------------------------------------------------

    async def _read_app(self) -> Optional[RawDocument]:
        raise NotImplementedError

    async def _write_app(self, body: Dict[str, Any], expected_etag: Optional[str]) -> str:
        raise NotImplementedError

    async def _read_org(self, org_slug: str) -> Optional[RawDocument]:
        raise NotImplementedError

    async def _write_org(self, org_slug: str, body: Dict[str, Any], expected_etag: Optional[str]) -> str:
        raise NotImplementedError

    async def _scan_org_slugs(self) -> List[str]:
        raise NotImplementedError

    # -------------------------------------------------------------------------
    # Port implementation
    # -------------------------------------------------------------------------

    async def _call(self, operation: str, func: Callable[[], Awaitable[T]], is_write: bool = False) -> T:
        return await run_with_retry(self.retry_policy, self.BACKEND, operation, func, is_write=is_write)

    async def find_app(self) -> Optional[ETagged[AppDocument]]:
        raw = await self._call("read app", self._read_app)
        if raw is None:
            return None
        result = self.engine.migrate("app", raw.body)
        return ETagged(data=result.document, etag=raw.etag)

    async def get_app(self) -> ETagged[AppDocument]:
        found = await self.find_app()
        if found is None:
            return await self._bootstrap_app()
        return found

    async def _bootstrap_app(self) -> ETagged[AppDocument]:
        seeded = AppDocument.model_validate(seed_app_document())
        try:
            etag = await self.upsert_app(seeded, expected_etag=ETAG_ABSENT)
            logger.info(f"{self.BACKEND}: seeded empty store with default app document")
            return ETagged(data=seeded, etag=etag)
        except ConcurrencyError:
            # Another process seeded first.
            found = await self.find_app()
            if found is None:
                raise NotFoundError(APP_KEY)
            return found

    async def get_org(self, org_slug: str) -> ETagged[OrgDocument]:
        raw = await self._call(f"read org {org_slug}", lambda: self._read_org(org_slug))
        if raw is None:
            raise NotFoundError(org_key(org_slug))
        result = self.engine.migrate("org", raw.body)
        return ETagged(data=result.document, etag=raw.etag)

    async def list_orgs(self, filter: Optional[OrgListFilter] = None) -> List[OrgSummary]:
        app = (await self.get_app()).data
        summaries = [
            OrgSummary(
                org_slug=s.org_slug,
                org_name=s.org_name,
                primary_contact_email=s.primary_contact_email,
                created_at=s.created_at,
                hunts_total=s.summary.hunts_total if s.summary else 0,
            )
            for s in app.organizations
        ]
        return (filter or OrgListFilter()).apply(summaries)

    async def upsert_org(self, org_slug: str, data: OrgPayload, expected_etag: Optional[str] = None) -> str:
        document = validate_org_document(data, org_slug=org_slug)
        body = serialize_document(document)
        return await self._call(
            f"write org {org_slug}",
            lambda: self._write_org(org_slug, body, expected_etag),
            is_write=True,
        )

    async def upsert_app(self, data: AppPayload, expected_etag: Optional[str] = None) -> str:
        document = validate_app_document(data)
        body = serialize_document(document)
        return await self._call("write app", lambda: self._write_app(body, expected_etag), is_write=True)

    async def list_org_slugs(self) -> List[str]:
        return sorted(await self._call("scan orgs", self._scan_org_slugs))

    # Stored bodies before migration, for maintenance commands.

    async def read_raw_app(self) -> Optional[RawDocument]:
        return await self._call("read app", self._read_app)

    async def read_raw_org(self, org_slug: str) -> Optional[RawDocument]:
        return await self._call(f"read org {org_slug}", lambda: self._read_org(org_slug))


class OrgBackedEventRepo(EventRepoPort):
    """
    EventRepoPort on top of an OrgRepoPort.

    Events are hunts inside Org documents; the App ``byDate`` index says which
    organizations to open for a given day.
    """

    def __init__(self, org_repo: OrgRepoPort):
        self.org_repo = org_repo
        self.BACKEND = org_repo.BACKEND

    async def list_today(self, day: Union[str, date], org_filter: Optional[str] = None) -> List[EventSummary]:
        day = normalize_day(day)
        app = (await self.org_repo.get_app()).data
        entries = [e for e in app.by_date.get(day, []) if org_filter is None or e.org_slug == org_filter]

        summaries: List[EventSummary] = []
        orgs: Dict[str, Optional[OrgDocument]] = {}
        unreadable: Set[str] = set()
        for entry in entries:
            if entry.org_slug not in orgs:
                try:
                    orgs[entry.org_slug] = (await self.org_repo.get_org(entry.org_slug)).data
                except NotFoundError:
                    orgs[entry.org_slug] = None
                except (ValidationError, MigrationIntegrityError) as e:
                    logger.error(f"byDate[{day}]: skipping unreadable org {entry.org_slug}: {e.message}")
                    orgs[entry.org_slug] = None
                    unreadable.add(entry.org_slug)
            if entry.org_slug in unreadable:
                continue
            org = orgs[entry.org_slug]
            hunt = org.find_hunt(entry.hunt_id) if org else None
            if hunt is None:
                logger.warning(f"byDate[{day}] references missing hunt {entry.org_slug}/{entry.hunt_id}")
                continue
            summaries.append(EventSummary(
                org_slug=entry.org_slug,
                hunt_id=hunt.id,
                name=hunt.name,
                start_date=hunt.start_date,
                end_date=hunt.end_date,
                status=hunt.status,
                org_name=org.org.org_name,
            ))
        return summaries

    async def get_event(self, org_slug: str, hunt_id: str) -> Event:
        org = (await self.org_repo.get_org(org_slug)).data
        hunt = org.find_hunt(hunt_id)
        if hunt is None:
            raise NotFoundError(f"{org_key(org_slug)}/hunts/{hunt_id}")
        return Event(org_slug=org_slug, hunt=hunt)

    async def upsert_event(self, event: Event, expected_etag: Optional[str] = None) -> ETagged[Event]:
        current = await self.org_repo.get_org(event.org_slug)
        org = current.data
        hunts = [h for h in org.hunts if h.id != event.hunt.id]
        position = next((i for i, h in enumerate(org.hunts) if h.id == event.hunt.id), len(hunts))
        hunts.insert(position, event.hunt)
        org.hunts = hunts
        etag = await self.org_repo.upsert_org(
            event.org_slug,
            org,
            expected_etag=expected_etag if expected_etag is not None else current.etag,
        )
        return ETagged(data=event, etag=etag)
