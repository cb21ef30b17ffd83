"""
Backup job service.

Runs the scheduled backup job: export every table, encode and compress the
document, upload it under a dated key, then sweep expired archives. Also
answers the status and listing queries the HTTP layer serves.

Invariants:
    - Upload happens only after export and compression succeed
    - Every run writes a new key; archives are never overwritten
    - Failures are logged and reported in results, never raised to callers
    - Cleanup runs even if the backup failed

How to change safely:
    - Keep the metadata tag names stable (operators filter on them)
    - Keep result field names stable (the HTTP body exposes them)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..archive.codec import CONTENT_TYPE, archive_key, compress, encode_document
from ..config import ServiceConfig
from ..db.base import Database
from ..schema.registry import TableRegistry
from ..snapshot.exporter import SnapshotExporter
from ..snapshot.models import format_timestamp
from ..storage.base import ArchiveHandle, BlobStore, list_archives
from ..retention.sweeper import RetentionSweeper

logger = logging.getLogger(__name__)

HEALTHY = "HEALTHY"
WARNING = "WARNING"


@dataclass
class BackupResult:
    """Outcome of one backup upload."""

    success: bool
    key: Optional[str] = None
    size_bytes: int = 0
    tables_backed_up: int = 0
    total_records: int = 0
    checksum: Optional[str] = None
    duration_ms: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "key": self.key,
            "size_bytes": self.size_bytes,
            "tables_backed_up": self.tables_backed_up,
            "total_records": self.total_records,
            "checksum": self.checksum,
            "duration_ms": self.duration_ms,
            "error": self.error,
        }


@dataclass
class CleanupResult:
    """Outcome of one retention sweep."""

    success: bool
    deleted_count: int = 0
    deleted_keys: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "deleted_count": self.deleted_count,
            "deleted_keys": list(self.deleted_keys),
            "error": self.error,
        }


@dataclass
class BackupJobResult:
    """Backup plus cleanup for one scheduled run."""

    backup: BackupResult
    cleanup: CleanupResult
    total_duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.backup.success

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backup": self.backup.to_dict(),
            "cleanup": self.cleanup.to_dict(),
            "total_duration_ms": self.total_duration_ms,
        }


@dataclass
class BackupStats:
    """Summary of the archives in the store.

    Attributes:
        total_backups: Number of archives
        total_size: Sum of archive sizes in bytes
        oldest: Oldest archive, if any
        newest: Newest archive, if any
        by_date: Archive count per key date, newest date first
    """

    total_backups: int = 0
    total_size: int = 0
    oldest: Optional[ArchiveHandle] = None
    newest: Optional[ArchiveHandle] = None
    by_date: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_backups": self.total_backups,
            "total_size": self.total_size,
            "total_size_mb": round(self.total_size / 1024 / 1024, 2),
            "oldest": self.oldest.to_dict() if self.oldest else None,
            "newest": self.newest.to_dict() if self.newest else None,
            "by_date": dict(self.by_date),
        }


@dataclass
class HealthStatus:
    status: str
    days_since_last_backup: Optional[int]
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "days_since_last_backup": self.days_since_last_backup,
            "message": self.message,
        }


def archive_date(key: str, prefix: str) -> str:
    """Date partition of an archive key ("unknown" if the key has none)."""
    relative = key[len(prefix):] if key.startswith(prefix) else key
    if "/" not in relative:
        return "unknown"
    return relative.split("/", 1)[0] or "unknown"


def health(stats: BackupStats, now: Optional[datetime] = None) -> HealthStatus:
    """HEALTHY when the newest archive is at most one day old."""
    if stats.newest is None:
        return HealthStatus(status=WARNING, days_since_last_backup=None, message="No backups found")

    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    days = (now - stats.newest.last_modified).days
    if days <= 1:
        return HealthStatus(status=HEALTHY, days_since_last_backup=days, message="Backups are current")
    return HealthStatus(
        status=WARNING,
        days_since_last_backup=days,
        message=f"Last backup was {days} days ago",
    )


class BackupService:
    """Creates, sweeps and summarises backup archives.

    Example:
        >>> service = BackupService(database, registry, store, config)
        >>> result = await service.run_backup_job()
        >>> result.backup.key
        'backups/2024-06-01/2024-06-01_02-00-00_full.json.gz'
    """

    def __init__(
        self,
        database: Database,
        registry: TableRegistry,
        store: BlobStore,
        config: ServiceConfig,
    ) -> None:
        """Initialize the backup service.

        Args:
            database: Database gateway to export from
            registry: Frozen table registry
            store: Blob store for archives
            config: Service configuration
        """
        self.database = database
        self.registry = registry
        self.store = store
        self.config = config
        self.prefix = config.s3.backup_prefix
        self.exporter = SnapshotExporter(
            database,
            registry,
            environment=config.backup.environment,
            format_version=config.backup.format_version,
        )
        self.sweeper = RetentionSweeper(
            store,
            prefix=self.prefix,
            max_batch=config.backup.max_delete_batch,
        )

    async def create_backup(self, now: Optional[datetime] = None) -> BackupResult:
        """Export, compress and upload one archive."""
        start_time = time.time()
        now = now or datetime.now(timezone.utc)
        logger.info("Starting database backup...")

        try:
            document = await self.exporter.export_snapshot(now=now)
            body = compress(encode_document(document.to_dict()))

            key = archive_key(now, prefix=self.prefix)
            metadata = document.metadata
            logger.info(f"Uploading backup to {key} ({len(body) / 1024:.2f} KB)")
            await self.store.put(
                key,
                body,
                CONTENT_TYPE,
                tags={
                    "backup-version": metadata.format_version,
                    "backup-date": format_timestamp(metadata.created_at),
                    "total-records": str(metadata.total_records),
                    "checksum": metadata.checksum,
                },
            )
        except Exception as e:
            duration_ms = int((time.time() - start_time) * 1000)
            logger.error(f"Backup failed: {e}", exc_info=True)
            return BackupResult(success=False, duration_ms=duration_ms, error=str(e))

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "Backup completed",
            extra={
                "key": key,
                "size_bytes": len(body),
                "total_records": metadata.total_records,
                "duration_ms": duration_ms,
            },
        )
        return BackupResult(
            success=True,
            key=key,
            size_bytes=len(body),
            tables_backed_up=len(metadata.tables),
            total_records=metadata.total_records,
            checksum=metadata.checksum,
            duration_ms=duration_ms,
        )

    async def cleanup_old_backups(self, now: Optional[datetime] = None) -> CleanupResult:
        """Delete archives past the retention window."""
        try:
            sweep = await self.sweeper.sweep(self.config.backup.retention_days, now=now)
        except Exception as e:
            logger.error(f"Cleanup failed: {e}", exc_info=True)
            return CleanupResult(success=False, error=str(e))

        return CleanupResult(
            success=True,
            deleted_count=sweep.deleted_count,
            deleted_keys=sweep.deleted_keys,
        )

    async def run_backup_job(self, now: Optional[datetime] = None) -> BackupJobResult:
        """Backup, then cleanup."""
        start_time = time.time()
        logger.info("=== Starting scheduled backup job ===")

        backup = await self.create_backup(now=now)
        cleanup = await self.cleanup_old_backups(now=now)

        total_duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "=== Backup job completed ===",
            extra={
                "backup_success": backup.success,
                "cleanup_deleted": cleanup.deleted_count,
                "total_duration_ms": total_duration_ms,
            },
        )
        return BackupJobResult(backup=backup, cleanup=cleanup, total_duration_ms=total_duration_ms)

    async def list_backups(self) -> List[ArchiveHandle]:
        """All archives, newest first.

        Raises:
            StorageError: If listing fails
        """
        return await list_archives(self.store, self.prefix)

    async def get_backup_stats(self) -> BackupStats:
        """Count, size and date grouping of the stored archives.

        Raises:
            StorageError: If listing fails
        """
        handles = await self.list_backups()
        if not handles:
            return BackupStats()

        by_date: Dict[str, int] = {}
        for handle in handles:
            date = archive_date(handle.key, self.prefix)
            by_date[date] = by_date.get(date, 0) + 1

        return BackupStats(
            total_backups=len(handles),
            total_size=sum(h.size_bytes for h in handles),
            oldest=handles[-1],
            newest=handles[0],
            by_date=by_date,
        )
