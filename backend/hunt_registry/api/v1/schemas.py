"""
Request and response models for API v1.

Payloads use the camelCase field names of the stored documents. Request
models for creating organizations and hunts come from the service layer.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ...core.models import DualWriteResult, EventSummary, HuntStatus, OrgSummary, RegistryModel
from ...services import CreateHuntRequest, CreateOrgRequest, UpdateOrgRequest

__all__ = [
    "CreateHuntRequest",
    "CreateOrgRequest",
    "UpdateOrgRequest",
    "ErrorResponse",
    "EventListResponse",
    "HealthResponse",
    "HuntWriteResponse",
    "OrgListResponse",
    "OrgWriteResponse",
    "ScheduleUpdateRequest",
    "StatusUpdateRequest",
    "secondary_synced",
]


class ErrorResponse(BaseModel):
    """Error body returned for every typed registry error."""
    error: str
    detail: str
    field_path: Optional[str] = None
    timestamp: datetime


class StatusUpdateRequest(RegistryModel):
    status: HuntStatus


class ScheduleUpdateRequest(RegistryModel):
    start_date: str
    end_date: str


class OrgListResponse(RegistryModel):
    organizations: List[OrgSummary]
    total: int


class OrgWriteResponse(RegistryModel):
    org_slug: str
    etag: str
    registry_synced: bool = True
    secondary_synced: bool = True
    org: Dict[str, Any]


class HuntWriteResponse(RegistryModel):
    org_slug: str
    etag: str
    changed: bool = True
    index_synced: bool = True
    secondary_synced: bool = True
    hunt: Dict[str, Any]


class EventListResponse(RegistryModel):
    date: str
    events: List[EventSummary]


class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: datetime
    components: Dict[str, Any] = Field(default_factory=dict)
    registry: Dict[str, Any] = Field(default_factory=dict)


def secondary_synced(result: Optional[DualWriteResult]) -> bool:
    return result is None or result.fully_synced
