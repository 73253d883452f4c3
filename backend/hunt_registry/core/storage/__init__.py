from .base import DocumentOrgRepo, OrgBackedEventRepo, RawDocument, serialize_document
from .blob_adapter import BlobDocumentStore, BlobEventRepoAdapter, BlobOrgRepoAdapter
from .dual_write import DualWriteOrgRepo
from .memory_adapter import MemoryEventRepoAdapter, MemoryMediaAdapter, MemoryOrgRepoAdapter, MemoryStore
from .minio_media_adapter import MinioMediaAdapter
from .retry import RetryPolicy, run_with_retry
from .table_adapter import TableEventRepoAdapter, TableOrgRepoAdapter, TableStore

__all__ = [
    "BlobDocumentStore",
    "BlobEventRepoAdapter",
    "BlobOrgRepoAdapter",
    "DocumentOrgRepo",
    "DualWriteOrgRepo",
    "MemoryEventRepoAdapter",
    "MemoryMediaAdapter",
    "MemoryOrgRepoAdapter",
    "MemoryStore",
    "MinioMediaAdapter",
    "OrgBackedEventRepo",
    "RawDocument",
    "RetryPolicy",
    "TableEventRepoAdapter",
    "TableOrgRepoAdapter",
    "TableStore",
    "run_with_retry",
    "serialize_document",
]
