"""
OrgRepoPort - storage-agnostic access to the App and Org documents.

Every read returns the current-schema typed document plus the etag of the
stored state it came from. Every write takes an optional expected etag:

    expected_etag=None          unconditional write
    expected_etag=ETAG_ABSENT   create-only, fails if the document exists
    expected_etag=<etag>        compare-and-swap against the stored etag

A failed precondition raises ``ConcurrencyError``; nothing backend-specific
crosses this interface.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

from ..models import (
    AppDocument,
    DualWriteResult,
    ETagged,
    OrgDocument,
    OrgListFilter,
    OrgSummary,
    WriteOutcome,
)

# Expected-etag value for "the document must not exist yet".
ETAG_ABSENT = "<absent>"

OrgPayload = Union[OrgDocument, Dict[str, Any]]
AppPayload = Union[AppDocument, Dict[str, Any]]


class OrgRepoPort(ABC):
    """Port for the App singleton and the per-organization documents."""

    BACKEND: str = "abstract"

    @abstractmethod
    async def get_app(self) -> ETagged[AppDocument]:
        """Returns the App document, seeding a default one if the store is empty."""
        ...

    @abstractmethod
    async def find_app(self) -> Optional[ETagged[AppDocument]]:
        """Returns the App document, or None if the store has none. Never writes."""
        ...

    @abstractmethod
    async def get_org(self, org_slug: str) -> ETagged[OrgDocument]:
        """Raises ``NotFoundError`` when the organization has no document."""
        ...

    @abstractmethod
    async def list_orgs(self, filter: Optional[OrgListFilter] = None) -> List[OrgSummary]:
        ...

    @abstractmethod
    async def upsert_org(
        self, org_slug: str, data: OrgPayload, expected_etag: Optional[str] = None
    ) -> str:
        """Validate and write an Org document; returns the new etag."""
        ...

    @abstractmethod
    async def upsert_app(self, data: AppPayload, expected_etag: Optional[str] = None) -> str:
        """Validate and write the App document; returns the new etag."""
        ...

    @abstractmethod
    async def list_org_slugs(self) -> List[str]:
        """Slugs of every stored Org document, from a physical scan of the store."""
        ...

    async def write_org(
        self, org_slug: str, data: OrgPayload, expected_etag: Optional[str] = None
    ) -> DualWriteResult:
        etag = await self.upsert_org(org_slug, data, expected_etag)
        return DualWriteResult(primary=WriteOutcome(ok=True, etag=etag))

    async def write_app(self, data: AppPayload, expected_etag: Optional[str] = None) -> DualWriteResult:
        etag = await self.upsert_app(data, expected_etag)
        return DualWriteResult(primary=WriteOutcome(ok=True, etag=etag))

    async def initialize(self) -> None:
        """Create backend containers (bucket, tables) if missing. Idempotent."""
        return None

    async def health_check(self) -> Dict[str, Any]:
        return {"backend": self.BACKEND, "status": "unknown"}

    async def aclose(self) -> None:
        """Release pooled connections."""
        return None
