# ============================================================================
# Hunt Registry - FastAPI Application Entry Point
# ============================================================================
"""
Main FastAPI application module for the Hunt Registry API.

This module sets up the FastAPI application with:
- CORS middleware configuration for cross-origin requests
- The adapter registry, built once and shared through ``app.state``
- Error handlers mapping registry errors to HTTP status codes
- API router integration

Usage:
    Direct: python -m hunt_registry.main
    Server: uvicorn hunt_registry.main:app --host 0.0.0.0 --port 8000
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from .api.v1 import api_router
from .api.v1.schemas import ErrorResponse
from .config import settings
from .core.errors import RegistryError, ValidationError
from .core.registry import AdapterRegistry
from .core.schemas.validation import from_pydantic_error

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("hunt_registry.main")

ERROR_TITLES = {
    "ValidationError": "Validation Error",
    "MigrationIntegrityError": "Migration Integrity Error",
    "ConcurrencyError": "Concurrency Conflict",
    "AlreadyExistsError": "Already Exists",
    "NotFoundError": "Not Found",
    "BackendUnavailableError": "Backend Unavailable",
    "StatusTransitionError": "Invalid Status Transition",
}


def _error_response(status_code: int, error: str, detail: str, field_path: Optional[str] = None) -> JSONResponse:
    body = ErrorResponse(error=error, detail=detail, field_path=field_path, timestamp=datetime.now())
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))


# ============================================================================
# ERROR HANDLERS
# ============================================================================

async def registry_exception_handler(request: Request, exc: RegistryError) -> JSONResponse:
    """Map a typed registry error to its status code and a JSON error body."""
    name = type(exc).__name__
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {name}: {exc.message}")
    return _error_response(
        exc.status_code,
        ERROR_TITLES.get(name, name),
        exc.message,
        field_path=getattr(exc, "field_path", None),
    )


async def pydantic_exception_handler(request: Request, exc: PydanticValidationError) -> JSONResponse:
    """Model validation failures raised inside services."""
    error: ValidationError = from_pydantic_error(exc, "Invalid payload")
    return _error_response(422, ERROR_TITLES["ValidationError"], error.message, field_path=error.field_path)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    detail = str(exc) if settings.debug else "An unexpected error occurred"
    return _error_response(500, "Internal Server Error", detail)


# ============================================================================
# APPLICATION FACTORY
# ============================================================================

def create_app(registry: Optional[AdapterRegistry] = None) -> FastAPI:
    """
    Build the FastAPI application around one adapter registry.

    Args:
        registry: Registry to serve from; built from settings when omitted

    Returns:
        Configured FastAPI application
    """
    registry = registry or AdapterRegistry.from_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.api_title} {settings.api_version}")
        logger.info(f"Adapter selection: {registry.status()['config']}")
        yield
        logger.info("Shutting down; closing storage connections")
        await registry.aclose()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="Versioned App and Org documents for scavenger-hunt organizations",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.registry = registry

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["ETag"],
    )

    app.add_exception_handler(RegistryError, registry_exception_handler)
    app.add_exception_handler(PydanticValidationError, pydantic_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/", tags=["root"])
    async def root() -> Dict[str, Any]:
        return {
            "name": settings.api_title,
            "version": settings.api_version,
            "status": "running",
            "docs_url": "/docs",
            "health_check": "/api/v1/health",
            "timestamp": datetime.now(),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("hunt_registry.main:app", host="0.0.0.0", port=8000, log_level=settings.log_level.lower())
