"""
In-memory adapters for tests and ``mock`` mode.

``MemoryStore`` keeps serialized JSON bytes with store-wide counter etags,
so etags are unique across documents just like real backends. Every
operation yields to the event loop once to behave like network I/O, which
lets concurrent writers interleave in tests.
"""

import asyncio
import itertools
import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from ..errors import AlreadyExistsError, ConcurrencyError
from ..models import MediaUploadOptions, MediaUploadResponse
from ..ports import ETAG_ABSENT, MediaFile, MediaPort, ResourceType
from ..utils.text_utils import utc_now_iso
from .base import APP_KEY, DocumentOrgRepo, OrgBackedEventRepo, RawDocument, decode_body, encode_body, org_key
from .retry import RetryPolicy

logger = logging.getLogger("hunt_registry.storage.memory")


class MemoryStore:
    """Key -> (payload, etag) map with compare-and-swap puts."""

    def __init__(self):
        self._objects: Dict[str, Tuple[bytes, str]] = {}
        self._counter = itertools.count(1)

    def get(self, key: str) -> Optional[Tuple[bytes, str]]:
        return self._objects.get(key)

    def put(self, key: str, payload: bytes, expected_etag: Optional[str] = None) -> str:
        current = self._objects.get(key)
        if expected_etag == ETAG_ABSENT:
            if current is not None:
                raise AlreadyExistsError(key)
        elif expected_etag is not None and (current is None or current[1] != expected_etag):
            raise ConcurrencyError(key, expected_etag)
        etag = f'"{next(self._counter):08x}"'
        self._objects[key] = (payload, etag)
        return etag

    def delete(self, key: str) -> bool:
        return self._objects.pop(key, None) is not None

    def keys(self, prefix: str = "") -> List[str]:
        return sorted(k for k in self._objects if k.startswith(prefix))

    def clear(self) -> None:
        self._objects.clear()


class MemoryOrgRepoAdapter(DocumentOrgRepo):

    BACKEND = "mock"

    def __init__(self, store: Optional[MemoryStore] = None, retry_policy: Optional[RetryPolicy] = None):
        super().__init__(retry_policy=retry_policy)
        self.store = store if store is not None else MemoryStore()

    async def _get(self, key: str) -> Optional[RawDocument]:
        await asyncio.sleep(0)
        found = self.store.get(key)
        if found is None:
            return None
        payload, etag = found
        return RawDocument(body=decode_body(payload, key), etag=etag)

    async def _put(self, key: str, body: Dict[str, Any], expected_etag: Optional[str]) -> str:
        await asyncio.sleep(0)
        return self.store.put(key, encode_body(body), expected_etag)

    async def _read_app(self) -> Optional[RawDocument]:
        return await self._get(APP_KEY)

    async def _write_app(self, body: Dict[str, Any], expected_etag: Optional[str]) -> str:
        return await self._put(APP_KEY, body, expected_etag)

    async def _read_org(self, org_slug: str) -> Optional[RawDocument]:
        return await self._get(org_key(org_slug))

    async def _write_org(self, org_slug: str, body: Dict[str, Any], expected_etag: Optional[str]) -> str:
        return await self._put(org_key(org_slug), body, expected_etag)

    async def _scan_org_slugs(self) -> List[str]:
        prefix = org_key("")
        return [key[len(prefix):] for key in self.store.keys(prefix)]

    async def health_check(self) -> Dict[str, Any]:
        return {"backend": self.BACKEND, "status": "healthy", "documents": len(self.store.keys())}


class MemoryEventRepoAdapter(OrgBackedEventRepo):
    pass


class MemoryMediaAdapter(MediaPort):
    """Keeps uploaded bytes in a dict and returns ``memory://`` pointers."""

    PROVIDER = "mock"

    def __init__(self):
        self.objects: Dict[str, bytes] = {}

    async def _upload(self, file: MediaFile, options: MediaUploadOptions, media_type: str) -> MediaUploadResponse:
        data = file if isinstance(file, bytes) else file.read()
        parts = [options.org_slug, options.hunt_id, options.stop_id or "hunt", uuid.uuid4().hex]
        public_id = "/".join(parts)
        self.objects[public_id] = bytes(data)
        return MediaUploadResponse(
            media_type=media_type,
            public_id=public_id,
            url=f"memory://{public_id}",
            created_at=utc_now_iso(),
        )

    async def upload_image(self, file: MediaFile, options: MediaUploadOptions) -> MediaUploadResponse:
        return await self._upload(file, options, "image")

    async def upload_video(self, file: MediaFile, options: MediaUploadOptions) -> MediaUploadResponse:
        return await self._upload(file, options, "video")

    async def delete_media(self, public_id: str, resource_type: ResourceType = "image") -> bool:
        return self.objects.pop(public_id, None) is not None

    async def health_check(self) -> Dict[str, Any]:
        return {"provider": self.PROVIDER, "status": "healthy", "objects": len(self.objects)}
