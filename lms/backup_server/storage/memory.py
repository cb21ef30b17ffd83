"""
In-memory blob store for testing.

Provides the BlobStore contract without a bucket, for:
- Unit tests of the sweeper and the backup job
- Local development without S3 credentials

Invariants:
    - All data is lost on process exit
    - last_modified is stamped by the store, as S3 does
    - delete_batch enforces the same batch ceiling as S3

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with BlobStore protocol
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Set

from ..errors import StorageError
from .base import MAX_DELETE_BATCH, ArchiveHandle


@dataclass
class StoredObject:
    """An object held by InMemoryBlobStore."""

    body: bytes
    content_type: str
    last_modified: datetime
    tags: Dict[str, str] = field(default_factory=dict)


class InMemoryBlobStore:
    """In-memory implementation of BlobStore.

    Attributes:
        objects: Stored objects by key
        delete_calls: Key batches passed to delete_batch, in call order
        fail_operations: Operations ("put", "list", "delete", "get") that raise StorageError

    Example:
        >>> store = InMemoryBlobStore()
        >>> await store.put("backups/a.json.gz", b"...", "application/gzip")
        >>> [h.key for h in await store.list("backups/")]
        ['backups/a.json.gz']
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.objects: Dict[str, StoredObject] = {}
        self.delete_calls: List[List[str]] = []
        self.fail_operations: Set[str] = set()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _check(self, operation: str, key: Optional[str] = None) -> None:
        if operation in self.fail_operations:
            raise StorageError(f"Simulated {operation} failure", operation=operation, key=key)

    def add_object(self, key: str, body: bytes, last_modified: datetime) -> None:
        """Seed an object with an explicit modification time."""
        self.objects[key] = StoredObject(
            body=body,
            content_type="application/octet-stream",
            last_modified=last_modified,
        )

    async def put(
        self,
        key: str,
        body: bytes,
        content_type: str,
        tags: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._check("put", key)
        self.objects[key] = StoredObject(
            body=bytes(body),
            content_type=content_type,
            last_modified=self._clock(),
            tags=dict(tags or {}),
        )

    async def list(self, prefix: str) -> List[ArchiveHandle]:
        self._check("list", prefix)
        return [
            ArchiveHandle(key=key, size_bytes=len(obj.body), last_modified=obj.last_modified)
            for key, obj in self.objects.items()
            if key.startswith(prefix)
        ]

    async def delete_batch(self, keys: Sequence[str]) -> None:
        if len(keys) > MAX_DELETE_BATCH:
            raise ValueError(f"delete_batch accepts at most {MAX_DELETE_BATCH} keys, got {len(keys)}")
        self._check("delete")
        self.delete_calls.append(list(keys))
        for key in keys:
            self.objects.pop(key, None)

    async def get(self, key: str) -> bytes:
        self._check("get", key)
        if key not in self.objects:
            raise StorageError(f"No such key: {key}", operation="get", key=key)
        return self.objects[key].body

    async def close(self) -> None:
        pass
