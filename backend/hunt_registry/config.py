# ============================================================================
# Hunt Registry - Application Configuration
# ============================================================================
"""
Application configuration module using Pydantic Settings.

This module defines all configuration parameters for the Hunt Registry service,
including:
- API settings
- Storage backend selection (blob, table, mock) and staged-migration flags
- S3-compatible blob storage, SQL table storage and MinIO media settings
- Retry, timeout and concurrency budgets

Environment Variables:
    See .env.example for a complete list of available settings.

Usage:
    from hunt_registry.config import settings
    store = settings.primary_store
"""

from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings

StoreKind = Literal["blob", "table", "mock"]
MediaProvider = Literal["minio", "mock"]


class Settings(BaseSettings):
    # =========================================================================
    # API SETTINGS
    # =========================================================================
    api_title: str = "Hunt Registry API"
    api_version: str = "1.2.0"
    debug: bool = Field(default=False, description="Enable verbose logging & dev helpers")
    log_level: str = Field(default="INFO", description="Root log level")
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
        description="Allowed origins for CORS",
    )

    # =========================================================================
    # APP DOCUMENT DEFAULTS (used when seeding an empty store)
    # =========================================================================
    app_name: str = Field(default="Vail Hunt", description="Seeded app metadata name")
    app_environment: str = Field(default="production", description="Seeded app environment")
    default_timezone: str = Field(default="America/Denver", description="Seeded default timezone")
    default_locale: str = Field(default="en-US", description="Seeded default locale")

    # =========================================================================
    # STORE SELECTION
    # =========================================================================
    primary_store: StoreKind = Field(default="blob", description="Backend for registry documents")
    secondary_store: Optional[StoreKind] = Field(
        default=None, description="Second backend written during staged store migrations"
    )
    dual_write: bool = Field(default=False, description="Write org/app documents to both stores")
    read_new_store_first: bool = Field(
        default=False,
        description="Fall back to the secondary store when the primary has no document",
    )
    media_provider: MediaProvider = Field(default="minio", description="Media upload backend")

    # =========================================================================
    # BLOB STORAGE (S3-COMPATIBLE)
    # =========================================================================
    s3_endpoint_url: Optional[str] = Field(default=None, description="S3 endpoint (None = AWS)")
    s3_access_key: Optional[str] = Field(default=None, description="S3 access key")
    s3_secret_key: Optional[str] = Field(default=None, description="S3 secret key")
    s3_region: str = Field(default="us-east-1", description="S3 region")
    s3_bucket: str = Field(default="hunt-registry", description="Bucket holding registry documents")
    s3_prefix: str = Field(default="", description="Key prefix for registry documents")

    # =========================================================================
    # TABLE STORAGE (SQLALCHEMY)
    # =========================================================================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/hunt_registry.db",
        description="Async SQLAlchemy URL for table storage",
    )
    db_pool_size: int = Field(default=10, description="Connection pool size (PostgreSQL only)")
    db_max_overflow: int = Field(default=20, description="Extra pooled connections (PostgreSQL only)")

    # =========================================================================
    # MINIO MEDIA STORAGE
    # =========================================================================
    minio_endpoint: str = Field(default="minio:9000", description="MinIO endpoint")
    minio_access_key: str = Field(default="admin", description="MinIO access key")
    minio_secret_key: str = Field(default="changeme", description="MinIO secret key")
    minio_secure: bool = Field(default=False, description="Use HTTPS for MinIO")
    minio_public_endpoint: Optional[str] = Field(
        default=None, description="Host used in presigned URLs handed to clients"
    )
    minio_public_secure: bool = Field(default=False, description="Use HTTPS for public URLs")
    minio_bucket_media: str = Field(default="hunt-media", description="Bucket for uploaded media")
    minio_presigned_expiry: int = Field(default=7 * 24 * 3600, description="Presigned URL TTL (s)")

    # =========================================================================
    # RESILIENCE
    # =========================================================================
    storage_timeout_seconds: float = Field(default=10.0, description="Deadline per backend call")
    storage_max_retries: int = Field(default=3, description="Retries for transient backend errors")
    storage_retry_base_delay: float = Field(default=0.5, description="Initial backoff delay (s)")
    storage_retry_max_delay: float = Field(default=8.0, description="Backoff delay cap (s)")
    concurrency_max_retries: int = Field(default=1, description="Re-read/re-apply budget on conflicts")
    max_hunt_span_days: int = Field(default=31, description="Longest hunt indexed by date")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
