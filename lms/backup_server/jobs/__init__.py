"""
Jobs module: the scheduled backup job and archive summaries.
"""

from .service import (
    HEALTHY,
    WARNING,
    BackupJobResult,
    BackupResult,
    BackupService,
    BackupStats,
    CleanupResult,
    HealthStatus,
    archive_date,
    health,
)

__all__ = [
    "HEALTHY",
    "WARNING",
    "BackupJobResult",
    "BackupResult",
    "BackupService",
    "BackupStats",
    "CleanupResult",
    "HealthStatus",
    "archive_date",
    "health",
]
