from fastapi import APIRouter

# Aggregate all v1 routers here
from .routers import app, events, health, orgs

api_router = APIRouter()
api_router.include_router(app.router)
api_router.include_router(orgs.router)
api_router.include_router(events.router)
api_router.include_router(health.router)

__all__ = ["api_router"]
