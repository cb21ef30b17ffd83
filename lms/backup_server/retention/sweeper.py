"""
Retention sweeper for backup archives.

Deletes archives whose last-modified time is older than the retention
cutoff (now - retention_days).

Invariants:
    - An archive exactly at the cutoff is kept
    - An empty selection issues no delete request
    - Delete requests never exceed the store's batch ceiling
    - Failures propagate; the caller reports the job as failed
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from ..archive.codec import ARCHIVE_PREFIX
from ..storage.base import MAX_DELETE_BATCH, BlobStore

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """Archives removed by one sweep."""

    deleted_count: int = 0
    deleted_keys: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"deleted_count": self.deleted_count, "deleted_keys": list(self.deleted_keys)}


class RetentionSweeper:
    """Removes archives older than a retention window.

    Example:
        >>> sweeper = RetentionSweeper(store)
        >>> result = await sweeper.sweep(retention_days=14)
        >>> result.deleted_count
        3
    """

    def __init__(
        self,
        store: BlobStore,
        prefix: str = ARCHIVE_PREFIX,
        max_batch: int = MAX_DELETE_BATCH,
    ) -> None:
        if not 1 <= max_batch <= MAX_DELETE_BATCH:
            raise ValueError(f"max_batch must be between 1 and {MAX_DELETE_BATCH}")
        self.store = store
        self.prefix = prefix
        self.max_batch = max_batch

    async def sweep(self, retention_days: int, now: Optional[datetime] = None) -> SweepResult:
        """Delete archives last modified before now - retention_days.

        Raises:
            StorageError: If listing or deleting fails
        """
        # Naive datetimes are taken as local time
        now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        cutoff = now - timedelta(days=retention_days)
        logger.info(f"Cleaning up backups older than {retention_days} days...")

        handles = await self.store.list(self.prefix)
        if not handles:
            logger.info("No backups found to clean up")
            return SweepResult()

        expired = sorted(h.key for h in handles if h.last_modified < cutoff)
        if not expired:
            logger.info("No old backups to delete")
            return SweepResult()

        logger.info(f"Deleting {len(expired)} old backup(s)...")
        for start in range(0, len(expired), self.max_batch):
            await self.store.delete_batch(expired[start : start + self.max_batch])

        logger.info(
            f"Deleted {len(expired)} old backup(s)",
            extra={"cutoff": cutoff.isoformat(), "deleted_keys": expired},
        )
        return SweepResult(deleted_count=len(expired), deleted_keys=expired)
