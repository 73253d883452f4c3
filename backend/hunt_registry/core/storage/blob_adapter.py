"""
Blob storage adapters (S3-compatible object storage via boto3).

Layout under ``settings.s3_prefix``:
    app.json              App document
    orgs/<slug>.json      one Org document per organization

Conditional writes use S3 preconditions: ``IfMatch=<etag>`` for
compare-and-swap and ``IfNoneMatch="*"`` for create-only. Each document is a
single object, so every write here is atomic on its own; an App write and an
Org write are never atomic together.

boto3 is synchronous; every call runs in a worker thread.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from ...config import settings
from ..errors import AlreadyExistsError, BackendUnavailableError, ConcurrencyError
from ..ports import ETAG_ABSENT
from .base import DocumentOrgRepo, OrgBackedEventRepo, RawDocument, decode_body, encode_body
from .retry import RetryPolicy

logger = logging.getLogger("hunt_registry.storage.blob")

NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}
PRECONDITION_CODES = {"PreconditionFailed", "412"}
CONFLICT_CODES = {"ConditionalRequestConflict", "409"}
TRANSIENT_CODES = {"SlowDown", "ServiceUnavailable", "InternalError", "RequestTimeout", "Throttling", "503", "500"}
CONNECTION_ERRORS = (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError)


def _error_code(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Code", ""))


def _http_status(err: ClientError) -> int:
    return int(err.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0) or 0)


class BlobDocumentStore:
    """
    Thin JSON-object store over one bucket.

    Returns bodies and raw etags; translates boto errors into registry errors.
    The client is created lazily and shared by every caller.
    """

    BACKEND = "blob"

    def __init__(
        self,
        bucket: Optional[str] = None,
        prefix: Optional[str] = None,
        client: Any = None,
    ):
        self.bucket = bucket or settings.s3_bucket
        prefix = settings.s3_prefix if prefix is None else prefix
        self.prefix = prefix.strip("/")
        self._client = client

    @property
    def client(self):
        """Get or create the S3 client (lazy initialization)."""
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=settings.s3_endpoint_url,
                aws_access_key_id=settings.s3_access_key,
                aws_secret_access_key=settings.s3_secret_key,
                region_name=settings.s3_region,
                config=BotoConfig(
                    connect_timeout=settings.storage_timeout_seconds,
                    read_timeout=settings.storage_timeout_seconds,
                    retries={"max_attempts": 1},
                ),
            )
            logger.info(f"S3 client initialized (endpoint={settings.s3_endpoint_url or 'aws'}, bucket={self.bucket})")
        return self._client

    def full_key(self, key: str) -> str:
        return f"{self.prefix}/{key}" if self.prefix else key

    def _unavailable(self, err: Exception, operation: str) -> BackendUnavailableError:
        return BackendUnavailableError(self.BACKEND, f"{operation} failed: {err}")

    def _client_failure(self, err: ClientError, operation: str) -> BackendUnavailableError:
        if self._is_transient(err):
            return self._unavailable(err, operation)
        return BackendUnavailableError(
            self.BACKEND, f"{operation} failed: {_error_code(err)}", retryable=False
        )

    def _is_transient(self, err: ClientError) -> bool:
        return _error_code(err) in TRANSIENT_CODES or _http_status(err) >= 500

    # -------------------------------------------------------------------------
    # Sync operations (run in a thread)
    # -------------------------------------------------------------------------

    def _get_sync(self, key: str) -> Optional[RawDocument]:
        full_key = self.full_key(key)
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=full_key)
            payload = response["Body"].read()
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return None
            raise self._client_failure(e, f"get {full_key}") from e
        except CONNECTION_ERRORS as e:
            raise self._unavailable(e, f"get {full_key}") from e
        return RawDocument(body=decode_body(payload, full_key), etag=response["ETag"])

    def _put_sync(self, key: str, body: Dict[str, Any], expected_etag: Optional[str]) -> str:
        full_key = self.full_key(key)
        kwargs: Dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": full_key,
            "Body": encode_body(body),
            "ContentType": "application/json",
        }
        if expected_etag == ETAG_ABSENT:
            kwargs["IfNoneMatch"] = "*"
        elif expected_etag is not None:
            kwargs["IfMatch"] = expected_etag

        try:
            response = self.client.put_object(**kwargs)
        except ClientError as e:
            code = _error_code(e)
            if code in PRECONDITION_CODES:
                if expected_etag == ETAG_ABSENT:
                    raise AlreadyExistsError(key) from e
                raise ConcurrencyError(key, expected_etag) from e
            if code in CONFLICT_CODES:
                raise ConcurrencyError(key, expected_etag) from e
            # S3 answers IfMatch on a missing key with NoSuchKey, not 412.
            if code in NOT_FOUND_CODES and expected_etag not in (None, ETAG_ABSENT):
                raise ConcurrencyError(key, expected_etag) from e
            raise self._client_failure(e, f"put {full_key}") from e
        except CONNECTION_ERRORS as e:
            raise self._unavailable(e, f"put {full_key}") from e
        return response["ETag"]

    def _list_sync(self, prefix: str) -> List[str]:
        full_prefix = self.full_key(prefix)
        keys: List[str] = []
        kwargs: Dict[str, Any] = {"Bucket": self.bucket, "Prefix": full_prefix}
        try:
            while True:
                response = self.client.list_objects_v2(**kwargs)
                keys.extend(obj["Key"] for obj in response.get("Contents", []))
                if not response.get("IsTruncated"):
                    break
                kwargs["ContinuationToken"] = response["NextContinuationToken"]
        except ClientError as e:
            raise self._client_failure(e, f"list {full_prefix}") from e
        except CONNECTION_ERRORS as e:
            raise self._unavailable(e, f"list {full_prefix}") from e
        strip = len(self.full_key(""))
        return [key[strip:] for key in keys]

    def _ensure_bucket_sync(self) -> bool:
        try:
            self.client.head_bucket(Bucket=self.bucket)
            return False
        except ClientError as e:
            if _error_code(e) not in NOT_FOUND_CODES and _error_code(e) != "NoSuchBucket":
                raise self._client_failure(e, f"head bucket {self.bucket}") from e
        try:
            self.client.create_bucket(Bucket=self.bucket)
        except ClientError as e:
            raise self._client_failure(e, f"create bucket {self.bucket}") from e
        logger.info(f"Created bucket: {self.bucket}")
        return True

    # -------------------------------------------------------------------------
    # Async API
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Optional[RawDocument]:
        return await asyncio.to_thread(self._get_sync, key)

    async def put(self, key: str, body: Dict[str, Any], expected_etag: Optional[str] = None) -> str:
        return await asyncio.to_thread(self._put_sync, key, body, expected_etag)

    async def list_keys(self, prefix: str) -> List[str]:
        return await asyncio.to_thread(self._list_sync, prefix)

    async def ensure_bucket(self) -> bool:
        return await asyncio.to_thread(self._ensure_bucket_sync)

    async def health_check(self) -> Dict[str, Any]:
        try:
            await asyncio.to_thread(self.client.head_bucket, Bucket=self.bucket)
            return {"backend": self.BACKEND, "status": "healthy", "bucket": self.bucket}
        except (ClientError, *CONNECTION_ERRORS) as e:
            logger.error(f"S3 health check failed: {e}")
            return {"backend": self.BACKEND, "status": "unhealthy", "bucket": self.bucket, "error": str(e)}


APP_BLOB_KEY = "app.json"
ORG_BLOB_PREFIX = "orgs/"


def org_blob_key(org_slug: str) -> str:
    return f"{ORG_BLOB_PREFIX}{org_slug}.json"


class BlobOrgRepoAdapter(DocumentOrgRepo):
    """OrgRepoPort over ``app.json`` and ``orgs/<slug>.json`` objects."""

    BACKEND = "blob"

    def __init__(self, store: Optional[BlobDocumentStore] = None, retry_policy: Optional[RetryPolicy] = None):
        super().__init__(retry_policy=retry_policy)
        self.store = store or BlobDocumentStore()

    async def _read_app(self) -> Optional[RawDocument]:
        return await self.store.get(APP_BLOB_KEY)

    async def _write_app(self, body: Dict[str, Any], expected_etag: Optional[str]) -> str:
        return await self.store.put(APP_BLOB_KEY, body, expected_etag)

    async def _read_org(self, org_slug: str) -> Optional[RawDocument]:
        return await self.store.get(org_blob_key(org_slug))

    async def _write_org(self, org_slug: str, body: Dict[str, Any], expected_etag: Optional[str]) -> str:
        return await self.store.put(org_blob_key(org_slug), body, expected_etag)

    async def _scan_org_slugs(self) -> List[str]:
        keys = await self.store.list_keys(ORG_BLOB_PREFIX)
        return [
            key[len(ORG_BLOB_PREFIX):-len(".json")]
            for key in keys
            if key.endswith(".json") and "/" not in key[len(ORG_BLOB_PREFIX):]
        ]

    async def initialize(self) -> None:
        await self._call("ensure bucket", self.store.ensure_bucket)

    async def health_check(self) -> Dict[str, Any]:
        return await self.store.health_check()


class BlobEventRepoAdapter(OrgBackedEventRepo):
    """Events read through the blob org repo and the App ``byDate`` index."""
