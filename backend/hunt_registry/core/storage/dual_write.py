"""
Dual-write org repository for staged store migrations.

The primary store is authoritative: its etags are the ones handed to
callers and its write must succeed. After a successful primary write the
same document is written unconditionally to the secondary store. The
secondary outcome is reported in a ``DualWriteResult`` instead of being
absorbed, so callers can log it or schedule a ``migrate_store`` run.

With ``read_new_store_first`` the primary is read first and documents it
does not have yet are served from the secondary with ``ETAG_ABSENT``, which
makes the next write a create-only write on the primary.
"""

import logging
from typing import Any, Dict, List, Optional

from ..errors import NotFoundError
from ..models import AppDocument, DualWriteResult, ETagged, OrgDocument, OrgListFilter, OrgSummary, WriteOutcome
from ..ports import ETAG_ABSENT, AppPayload, OrgPayload, OrgRepoPort

logger = logging.getLogger("hunt_registry.storage.dual_write")


class DualWriteOrgRepo(OrgRepoPort):

    def __init__(self, primary: OrgRepoPort, secondary: OrgRepoPort, read_new_store_first: bool = False):
        self.primary = primary
        self.secondary = secondary
        self.read_new_store_first = read_new_store_first
        self.BACKEND = f"{primary.BACKEND}+{secondary.BACKEND}"

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def find_app(self) -> Optional[ETagged[AppDocument]]:
        found = await self.primary.find_app()
        if found is None and self.read_new_store_first:
            fallback = await self.secondary.find_app()
            if fallback is not None:
                logger.info(f"App document served from secondary store ({self.secondary.BACKEND})")
                return ETagged(data=fallback.data, etag=ETAG_ABSENT)
        return found

    async def get_app(self) -> ETagged[AppDocument]:
        found = await self.find_app()
        if found is not None:
            return found
        return await self.primary.get_app()

    async def get_org(self, org_slug: str) -> ETagged[OrgDocument]:
        try:
            return await self.primary.get_org(org_slug)
        except NotFoundError:
            if not self.read_new_store_first:
                raise
        fallback = await self.secondary.get_org(org_slug)
        logger.info(f"Org '{org_slug}' served from secondary store ({self.secondary.BACKEND})")
        return ETagged(data=fallback.data, etag=ETAG_ABSENT)

    async def list_orgs(self, filter: Optional[OrgListFilter] = None) -> List[OrgSummary]:
        return await self.primary.list_orgs(filter)

    async def list_org_slugs(self) -> List[str]:
        slugs = set(await self.primary.list_org_slugs())
        if self.read_new_store_first:
            slugs.update(await self.secondary.list_org_slugs())
        return sorted(slugs)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def _write_secondary(self, what: str, write) -> WriteOutcome:
        try:
            etag = await write()
            return WriteOutcome(ok=True, etag=etag)
        except Exception as e:
            logger.warning(f"Secondary write of {what} to {self.secondary.BACKEND} failed: {e}")
            return WriteOutcome(ok=False, error=e)

    async def write_org(
        self, org_slug: str, data: OrgPayload, expected_etag: Optional[str] = None
    ) -> DualWriteResult:
        etag = await self.primary.upsert_org(org_slug, data, expected_etag)
        secondary = await self._write_secondary(
            f"org '{org_slug}'", lambda: self.secondary.upsert_org(org_slug, data)
        )
        return DualWriteResult(primary=WriteOutcome(ok=True, etag=etag), secondary=secondary)

    async def write_app(self, data: AppPayload, expected_etag: Optional[str] = None) -> DualWriteResult:
        etag = await self.primary.upsert_app(data, expected_etag)
        secondary = await self._write_secondary("app", lambda: self.secondary.upsert_app(data))
        return DualWriteResult(primary=WriteOutcome(ok=True, etag=etag), secondary=secondary)

    async def upsert_org(self, org_slug: str, data: OrgPayload, expected_etag: Optional[str] = None) -> str:
        return (await self.write_org(org_slug, data, expected_etag)).etag

    async def upsert_app(self, data: AppPayload, expected_etag: Optional[str] = None) -> str:
        return (await self.write_app(data, expected_etag)).etag

    async def initialize(self) -> None:
        await self.primary.initialize()
        await self.secondary.initialize()

    async def health_check(self) -> Dict[str, Any]:
        primary = await self.primary.health_check()
        secondary = await self.secondary.health_check()
        if primary.get("status") != "healthy":
            overall = "unhealthy"
        elif secondary.get("status") != "healthy":
            overall = "degraded"
        else:
            overall = "healthy"
        return {
            "backend": self.BACKEND,
            "status": overall,
            "primary": primary,
            "secondary": secondary,
            "read_new_store_first": self.read_new_store_first,
        }

    async def aclose(self) -> None:
        await self.primary.aclose()
        await self.secondary.aclose()
