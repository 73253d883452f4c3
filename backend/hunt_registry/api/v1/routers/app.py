# backend/hunt_registry/api/v1/routers/app.py
from typing import Any, Dict

from fastapi import APIRouter, Depends, Response

from ..dependencies import get_service
from ....services import OrgRegistryService

router = APIRouter()


@router.get("/app", tags=["App"])
async def get_app(response: Response, service: OrgRegistryService = Depends(get_service)) -> Dict[str, Any]:
    """App document at the current schema version. Seeds a default one on an empty store."""
    current = await service.get_app()
    response.headers["ETag"] = current.etag
    return current.data.to_json_dict()
