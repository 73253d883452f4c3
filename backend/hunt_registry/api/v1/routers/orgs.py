# backend/hunt_registry/api/v1/routers/orgs.py
"""
Organization and hunt endpoints.

Every response that returns a document carries its ``ETag``. Writes accept
``If-Match``: with it the write only succeeds against that exact version
(409 otherwise); without it the service re-reads and merges on conflict.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, File, Form, Query, Response, UploadFile, status

from ..dependencies import get_service, if_match
from ..schemas import (
    CreateHuntRequest,
    CreateOrgRequest,
    HuntWriteResponse,
    OrgListResponse,
    OrgWriteResponse,
    ScheduleUpdateRequest,
    StatusUpdateRequest,
    UpdateOrgRequest,
    secondary_synced,
)
from ....core.models import MediaUploadOptions, MediaUploadResponse, OrgListFilter
from ....services import OrgRegistryService
from ....services.org_registry_service import HuntWriteResult, OrgWriteResult

logger = logging.getLogger("hunt_registry.api.orgs")

router = APIRouter()


def _org_response(response: Response, result: OrgWriteResult) -> OrgWriteResponse:
    response.headers["ETag"] = result.etag
    return OrgWriteResponse(
        org_slug=result.org_slug,
        etag=result.etag,
        registry_synced=result.registry_synced,
        secondary_synced=secondary_synced(result.write_result),
        org=result.org.to_json_dict(),
    )


def _hunt_response(response: Response, result: HuntWriteResult) -> HuntWriteResponse:
    response.headers["ETag"] = result.etag
    return HuntWriteResponse(
        org_slug=result.org_slug,
        etag=result.etag,
        changed=result.changed,
        index_synced=result.index_synced,
        secondary_synced=secondary_synced(result.write_result),
        hunt=result.hunt.to_json_dict(),
    )


@router.get("/orgs", response_model=OrgListResponse, tags=["Organizations"])
async def list_orgs(
    slug_prefix: Optional[str] = Query(default=None, alias="slugPrefix"),
    name_contains: Optional[str] = Query(default=None, alias="nameContains"),
    limit: Optional[int] = Query(default=None, ge=1),
    service: OrgRegistryService = Depends(get_service),
):
    summaries = await service.list_orgs(
        OrgListFilter(slug_prefix=slug_prefix, name_contains=name_contains, limit=limit)
    )
    return OrgListResponse(organizations=summaries, total=len(summaries))


@router.get("/orgs/{org_slug}", tags=["Organizations"])
async def get_org(
    org_slug: str,
    response: Response,
    service: OrgRegistryService = Depends(get_service),
) -> Dict[str, Any]:
    current = await service.get_org(org_slug)
    response.headers["ETag"] = current.etag
    return current.data.to_json_dict()


@router.post(
    "/orgs",
    response_model=OrgWriteResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Organizations"],
)
async def create_org(
    request: CreateOrgRequest,
    response: Response,
    service: OrgRegistryService = Depends(get_service),
):
    """Create an organization. 409 if the slug is taken."""
    result = await service.create_organization(request)
    return _org_response(response, result)


@router.put("/orgs/{org_slug}", response_model=OrgWriteResponse, tags=["Organizations"])
async def put_org(
    org_slug: str,
    response: Response,
    document: Dict[str, Any] = Body(...),
    expected_etag: Optional[str] = Depends(if_match),
    service: OrgRegistryService = Depends(get_service),
):
    """Replace the whole Org document."""
    result = await service.replace_organization(org_slug, document, expected_etag)
    return _org_response(response, result)


@router.patch("/orgs/{org_slug}", response_model=OrgWriteResponse, tags=["Organizations"])
async def patch_org(
    org_slug: str,
    request: UpdateOrgRequest,
    response: Response,
    expected_etag: Optional[str] = Depends(if_match),
    service: OrgRegistryService = Depends(get_service),
):
    result = await service.update_organization(org_slug, request, expected_etag)
    return _org_response(response, result)


@router.post(
    "/orgs/{org_slug}/hunts",
    response_model=HuntWriteResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Hunts"],
)
async def create_hunt(
    org_slug: str,
    request: CreateHuntRequest,
    response: Response,
    service: OrgRegistryService = Depends(get_service),
):
    """Add a hunt and index it under every date it runs."""
    result = await service.create_hunt(org_slug, request)
    return _hunt_response(response, result)


@router.patch("/orgs/{org_slug}/hunts/{hunt_id}/status", response_model=HuntWriteResponse, tags=["Hunts"])
async def update_hunt_status(
    org_slug: str,
    hunt_id: str,
    request: StatusUpdateRequest,
    response: Response,
    expected_etag: Optional[str] = Depends(if_match),
    service: OrgRegistryService = Depends(get_service),
):
    result = await service.update_hunt_status(org_slug, hunt_id, request.status, expected_etag)
    return _hunt_response(response, result)


@router.patch("/orgs/{org_slug}/hunts/{hunt_id}/schedule", response_model=HuntWriteResponse, tags=["Hunts"])
async def reschedule_hunt(
    org_slug: str,
    hunt_id: str,
    request: ScheduleUpdateRequest,
    response: Response,
    expected_etag: Optional[str] = Depends(if_match),
    service: OrgRegistryService = Depends(get_service),
):
    result = await service.reschedule_hunt(
        org_slug, hunt_id, request.start_date, request.end_date, expected_etag
    )
    return _hunt_response(response, result)


@router.post(
    "/orgs/{org_slug}/hunts/{hunt_id}/media",
    response_model=MediaUploadResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Hunts"],
)
async def upload_media(
    org_slug: str,
    hunt_id: str,
    response: Response,
    file: UploadFile = File(...),
    stop_id: Optional[str] = Form(default=None, alias="stopId"),
    team_name: Optional[str] = Form(default=None, alias="teamName"),
    service: OrgRegistryService = Depends(get_service),
):
    """Upload a photo or video; the Org document only records counters."""
    content = await file.read()
    options = MediaUploadOptions(
        org_slug=org_slug,
        hunt_id=hunt_id,
        stop_id=stop_id,
        team_name=team_name,
        filename=file.filename,
        content_type=file.content_type or "application/octet-stream",
    )
    result = await service.upload_hunt_media(org_slug, hunt_id, content, options)
    if result.etag:
        response.headers["ETag"] = result.etag
    if not result.counters_synced:
        logger.warning(f"Upload counters for {org_slug}/{hunt_id} not updated")
    return result.media
