"""
MinIO media adapter.

Uploads photos and videos to the media bucket and returns pointer objects
with presigned GET URLs. Only the pointer is stored in the registry; media
bytes never enter a registry document.

Object layout:
    <orgSlug>/<huntId>/<stopId|hunt>/<uuid>.<ext>
"""

import asyncio
import logging
import mimetypes
import uuid
from datetime import timedelta
from io import BytesIO
from typing import Any, Dict, Optional

from minio import Minio
from minio.error import S3Error

from ...config import settings
from ..errors import BackendUnavailableError
from ..models import MediaUploadOptions, MediaUploadResponse
from ..ports import MediaFile, MediaPort, ResourceType
from ..utils.text_utils import utc_now_iso

logger = logging.getLogger("hunt_registry.media.minio")

DEFAULT_EXTENSIONS = {"image": ".jpg", "video": ".mp4"}


class MinioMediaAdapter(MediaPort):
    """MediaPort backed by a MinIO (S3-compatible) bucket."""

    PROVIDER = "minio"

    def __init__(self, client: Optional[Minio] = None, bucket: Optional[str] = None):
        self._client = client
        self.bucket = bucket or settings.minio_bucket_media
        self.endpoint = settings.minio_endpoint
        self.secure = settings.minio_secure
        self.public_endpoint = settings.minio_public_endpoint
        self.public_secure = settings.minio_public_secure
        self.presigned_expiry = settings.minio_presigned_expiry
        self._bucket_checked = False

    @property
    def client(self) -> Minio:
        """Get or create MinIO client (lazy initialization)."""
        if self._client is None:
            self._client = Minio(
                endpoint=self.endpoint,
                access_key=settings.minio_access_key,
                secret_key=settings.minio_secret_key,
                secure=self.secure,
            )
            logger.info(f"MinIO client initialized (endpoint={self.endpoint}, secure={self.secure})")
        return self._client

    def _rewrite_presigned_url(self, url: str) -> str:
        """Swap the internal endpoint for the public one in presigned URLs."""
        if not self.public_endpoint or self.public_endpoint == self.endpoint:
            return url
        internal_base = f"{'https' if self.secure else 'http'}://{self.endpoint}"
        public_base = f"{'https' if self.public_secure else 'http'}://{self.public_endpoint}"
        return url.replace(internal_base, public_base)

    def _object_key(self, options: MediaUploadOptions, media_type: str) -> str:
        extension = None
        if options.filename and "." in options.filename:
            extension = "." + options.filename.rsplit(".", 1)[-1].lower()
        extension = extension or mimetypes.guess_extension(options.content_type) or DEFAULT_EXTENSIONS[media_type]
        stop = options.stop_id or "hunt"
        return f"{options.org_slug}/{options.hunt_id}/{stop}/{uuid.uuid4().hex}{extension}"

    def _ensure_bucket(self) -> None:
        if self._bucket_checked:
            return
        if not self.client.bucket_exists(self.bucket):
            self.client.make_bucket(self.bucket)
            logger.info(f"Created bucket: {self.bucket}")
        self._bucket_checked = True

    def _upload_sync(self, data: bytes, options: MediaUploadOptions, media_type: str) -> MediaUploadResponse:
        self._ensure_bucket()
        key = self._object_key(options, media_type)
        metadata = {"org-slug": options.org_slug, "hunt-id": options.hunt_id}
        if options.team_name:
            metadata["team-name"] = options.team_name
        self.client.put_object(
            self.bucket,
            key,
            BytesIO(data),
            length=len(data),
            content_type=options.content_type,
            metadata=metadata,
        )
        url = self.client.presigned_get_object(
            self.bucket, key, expires=timedelta(seconds=self.presigned_expiry)
        )
        logger.info(f"Uploaded {media_type} {key} ({len(data)} bytes)")
        return MediaUploadResponse(
            media_type=media_type,
            public_id=key,
            url=self._rewrite_presigned_url(url),
            created_at=utc_now_iso(),
        )

    async def _upload(self, file: MediaFile, options: MediaUploadOptions, media_type: str) -> MediaUploadResponse:
        data = file if isinstance(file, bytes) else file.read()
        try:
            return await asyncio.to_thread(self._upload_sync, bytes(data), options, media_type)
        except S3Error as e:
            logger.error(f"MinIO upload failed for {options.org_slug}/{options.hunt_id}: {e}")
            raise BackendUnavailableError(self.PROVIDER, f"upload failed: {e.code}") from e

    async def upload_image(self, file: MediaFile, options: MediaUploadOptions) -> MediaUploadResponse:
        return await self._upload(file, options, "image")

    async def upload_video(self, file: MediaFile, options: MediaUploadOptions) -> MediaUploadResponse:
        return await self._upload(file, options, "video")

    def _delete_sync(self, public_id: str) -> bool:
        try:
            self.client.stat_object(self.bucket, public_id)
        except S3Error as e:
            if e.code in ("NoSuchKey", "NoSuchObject"):
                return False
            raise
        self.client.remove_object(self.bucket, public_id)
        logger.info(f"Deleted media {public_id}")
        return True

    async def delete_media(self, public_id: str, resource_type: ResourceType = "image") -> bool:
        try:
            return await asyncio.to_thread(self._delete_sync, public_id)
        except S3Error as e:
            raise BackendUnavailableError(self.PROVIDER, f"delete failed: {e.code}") from e

    async def health_check(self) -> Dict[str, Any]:
        try:
            exists = await asyncio.to_thread(self.client.bucket_exists, self.bucket)
            return {"provider": self.PROVIDER, "status": "healthy", "bucket": self.bucket, "bucket_exists": exists}
        except Exception as e:
            logger.error(f"MinIO health check failed: {e}")
            return {"provider": self.PROVIDER, "status": "unhealthy", "error": str(e)}
