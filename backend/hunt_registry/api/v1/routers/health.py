# backend/hunt_registry/api/v1/routers/health.py
from datetime import datetime

from fastapi import APIRouter, Depends

from ..dependencies import get_service
from ..schemas import HealthResponse
from ....config import settings
from ....services import OrgRegistryService

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(service: OrgRegistryService = Depends(get_service)):
    """Health of the configured org repository and media provider."""
    report = await service.health_status()
    return HealthResponse(
        status=report["status"],
        version=settings.api_version,
        timestamp=datetime.now(),
        components=report["components"],
        registry=report["registry"],
    )
