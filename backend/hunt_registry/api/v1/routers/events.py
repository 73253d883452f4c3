# backend/hunt_registry/api/v1/routers/events.py
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from ..dependencies import get_service
from ..schemas import EventListResponse
from ....services import OrgRegistryService
from ....services.org_registry_service import registry_today

router = APIRouter()


@router.get("/events", response_model=EventListResponse, tags=["Events"])
async def list_events(
    date: Optional[str] = Query(default=None, description="ISO date; defaults to today"),
    org_slug: Optional[str] = Query(default=None, alias="orgSlug"),
    service: OrgRegistryService = Depends(get_service),
):
    """Hunts running on a date, resolved through the byDate index."""
    day = date or registry_today().isoformat()
    events = await service.list_today(day, org_slug)
    return EventListResponse(date=day, events=events)


@router.get("/events/{org_slug}/{hunt_id}", tags=["Events"])
async def get_event(
    org_slug: str,
    hunt_id: str,
    service: OrgRegistryService = Depends(get_service),
) -> Dict[str, Any]:
    event = await service.get_event(org_slug, hunt_id)
    return event.to_json_dict()
