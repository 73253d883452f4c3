"""
Models exchanged across the storage ports.

These are the only shapes a caller sees: typed documents wrapped with their
etag, event projections, and write outcomes. No backend SDK type appears here.
"""

from dataclasses import dataclass
from typing import Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, Field

from .base import RegistryModel
from .org_models import Hunt, HuntStatus

T = TypeVar("T")


@dataclass
class ETagged(Generic[T]):
    """A typed value together with the etag of the stored state it was read from."""
    data: T
    etag: str


class EventSummary(RegistryModel):
    """One hunt as listed by date."""
    org_slug: str
    hunt_id: str
    name: str
    start_date: str
    end_date: str
    status: HuntStatus
    org_name: Optional[str] = None


class Event(RegistryModel):
    """A hunt addressed by its owning organization."""
    org_slug: str
    hunt: Hunt


class OrgSummary(RegistryModel):
    org_slug: str
    org_name: str
    primary_contact_email: Optional[str] = None
    created_at: Optional[str] = None
    hunts_total: int = 0


class OrgListFilter(BaseModel):
    slug_prefix: Optional[str] = None
    name_contains: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=1)

    def matches(self, summary: OrgSummary) -> bool:
        if self.slug_prefix and not summary.org_slug.startswith(self.slug_prefix):
            return False
        if self.name_contains and self.name_contains.lower() not in summary.org_name.lower():
            return False
        return True

    def apply(self, summaries: List[OrgSummary]) -> List[OrgSummary]:
        selected = [s for s in summaries if self.matches(s)]
        if self.limit is not None:
            selected = selected[: self.limit]
        return selected


# =============================================================================
# WRITE OUTCOMES
# =============================================================================

@dataclass
class WriteOutcome:
    """Result of one write against one backend."""
    ok: bool
    etag: Optional[str] = None
    error: Optional[Exception] = None


@dataclass
class DualWriteResult:
    """
    Outcome of a write that may target two stores.

    ``secondary`` is None when only one store is configured. The primary
    outcome is always successful here: a failed primary write raises.
    """
    primary: WriteOutcome
    secondary: Optional[WriteOutcome] = None

    @property
    def etag(self) -> str:
        return self.primary.etag

    @property
    def fully_synced(self) -> bool:
        return self.secondary is None or self.secondary.ok


# =============================================================================
# MEDIA
# =============================================================================

class MediaUploadOptions(BaseModel):
    org_slug: str
    hunt_id: str
    stop_id: Optional[str] = None
    team_name: Optional[str] = None
    filename: Optional[str] = None
    content_type: str = "application/octet-stream"


class MediaUploadResponse(RegistryModel):
    """Pointer to uploaded media. The registry never stores the bytes."""
    media_type: Literal["image", "video"]
    public_id: str
    url: str
    thumbnail_url: Optional[str] = None
    poster_url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[float] = None
    created_at: str
