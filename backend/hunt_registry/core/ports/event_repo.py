"""EventRepoPort - hunts addressed as events, listed by date."""

from abc import ABC, abstractmethod
from datetime import date
from typing import List, Optional, Union

from ..models import ETagged, Event, EventSummary


class EventRepoPort(ABC):

    BACKEND: str = "abstract"

    @abstractmethod
    async def list_today(
        self, day: Union[str, date], org_filter: Optional[str] = None
    ) -> List[EventSummary]:
        """Hunts indexed under ``day`` (``YYYY-MM-DD``), optionally for one organization."""
        ...

    @abstractmethod
    async def get_event(self, org_slug: str, hunt_id: str) -> Event:
        ...

    @abstractmethod
    async def upsert_event(self, event: Event, expected_etag: Optional[str] = None) -> ETagged[Event]:
        """
        Insert or replace one hunt inside its Org document.

        ``expected_etag`` is the etag of the owning Org document. The returned
        etag is the Org document's new etag.
        """
        ...
