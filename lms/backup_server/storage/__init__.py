"""
Storage module for backup archives.

This module wraps object storage behind a narrow gateway:
- put / list / delete_batch / get
- S3 (aiobotocore) and in-memory backends

Invariants:
    - The gateway holds no retention or naming policy
    - Storage failures are StorageError, never botocore exceptions
"""

from .base import MAX_DELETE_BATCH, ArchiveHandle, BlobStore, list_archives
from .memory import InMemoryBlobStore
from .s3 import S3BlobStore

__all__ = [
    "MAX_DELETE_BATCH",
    "ArchiveHandle",
    "BlobStore",
    "list_archives",
    "InMemoryBlobStore",
    "S3BlobStore",
]
