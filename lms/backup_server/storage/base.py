"""
Base protocol and types for the blob store gateway.

The backup pipeline needs four calls from object storage: put an archive,
list archives by prefix, delete a batch of keys and fetch one archive for
restore. Key naming and retention policy live above this layer.

Invariants:
    - list() order is whatever the store returns; callers sort
    - delete_batch() never receives more than MAX_DELETE_BATCH keys
    - Every failure surfaces as StorageError

How to change safely:
    - Protocol changes require updating all implementations
    - Keep S3 semantics (last-modified set by the store) in test doubles
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, runtime_checkable

MAX_DELETE_BATCH = 1000


@dataclass(frozen=True)
class ArchiveHandle:
    """An archive object in the blob store.

    Attributes:
        key: Object key (date-partitioned path)
        size_bytes: Object size
        last_modified: When the store last wrote the object
    """

    key: str
    size_bytes: int
    last_modified: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "size_bytes": self.size_bytes,
            "last_modified": self.last_modified.isoformat(),
        }


@runtime_checkable
class BlobStore(Protocol):
    """Protocol for object storage backends."""

    @abstractmethod
    async def put(
        self,
        key: str,
        body: bytes,
        content_type: str,
        tags: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Upload an object.

        Raises:
            StorageError: On network or authorization failure
        """
        ...

    @abstractmethod
    async def list(self, prefix: str) -> List[ArchiveHandle]:
        """List objects under a prefix, in no particular order.

        Raises:
            StorageError: On network or authorization failure
        """
        ...

    @abstractmethod
    async def delete_batch(self, keys: Sequence[str]) -> None:
        """Delete up to MAX_DELETE_BATCH objects.

        Raises:
            StorageError: If the request fails or any key fails to delete
        """
        ...

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Download an object.

        Raises:
            StorageError: If the object cannot be fetched
        """
        ...


async def list_archives(store: BlobStore, prefix: str) -> List[ArchiveHandle]:
    """List archives under a prefix, newest first."""
    handles = await store.list(prefix)
    return sorted(handles, key=lambda h: h.last_modified, reverse=True)
