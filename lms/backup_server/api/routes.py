"""
API routes for the backup server.

Provides the scheduled backup trigger, its status view and the admin
archive listing. All routes are guarded by a shared bearer secret.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..audit import AuditAction, create_audit_log
from ..errors import AuthorizationError
from ..jobs.service import BackupService, archive_date, health
from ..snapshot.models import format_timestamp
from .auth import AuthResult, verify_authorization
from .config import Settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Backups"])


# --- Response Models ---


class BackupListEntry(BaseModel):
    """One archive in the admin listing."""

    key: str
    size_bytes: int
    size_mb: float
    last_modified: str
    age_in_days: int


class RestoreInstructions(BaseModel):
    note: str
    steps: list[str]


class BackupListResponse(BaseModel):
    """Admin listing of stored archives."""

    success: bool = True
    timestamp: str
    count: int
    total_size_mb: float
    backups: list[BackupListEntry]
    by_date: dict[str, list[BackupListEntry]]
    restore_instructions: RestoreInstructions = Field(...)


# --- Dependencies ---


def get_backup_service(request: Request) -> BackupService:
    """Get backup service from app state."""
    return request.app.state.backup_service


def get_settings(request: Request) -> Settings:
    """Get HTTP settings from app state."""
    return request.app.state.settings


def client_ip(request: Request) -> str | None:
    """Client IP, preferring proxy headers."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else None


def _size_mb(size_bytes: int) -> float:
    return round(size_bytes / 1024 / 1024, 2)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _authorize(
    request: Request,
    secret: str | None,
    settings: Settings,
    service: BackupService,
    reason: str,
) -> AuthResult:
    user_agent = request.headers.get("user-agent")
    try:
        return verify_authorization(
            request.headers.get("authorization"),
            secret,
            settings.app_env,
            user_agent=user_agent,
            scheduler_marker=service.config.backup.scheduler_user_agent,
        )
    except AuthorizationError as e:
        create_audit_log(
            AuditAction.SYSTEM_WARNING,
            metadata={"reason": reason, "error": e.message, "endpoint": request.url.path},
            ip_address=client_ip(request),
            user_agent=user_agent,
        )
        raise HTTPException(status_code=401, detail=e.message)


# --- Backup Routes ---


@router.post("/api/cron/db-backup")
async def trigger_backup(
    request: Request,
    service: BackupService = Depends(get_backup_service),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    """Run the backup job: backup, then cleanup."""
    start = _now()
    ip_address = client_ip(request)
    user_agent = request.headers.get("user-agent")

    auth = _authorize(request, settings.cron_secret, settings, service, "Unauthorized backup attempt")
    logger.info("Starting backup job", extra={"triggered_by": auth.triggered_by})

    try:
        result = await service.run_backup_job()
        stats = await service.get_backup_stats()
    except Exception as e:
        logger.error(f"Backup job crashed: {e}", exc_info=True)
        create_audit_log(
            AuditAction.BACKUP_FAILED,
            metadata={"error": str(e), "critical": True},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return JSONResponse(
            {
                "success": False,
                "timestamp": format_timestamp(_now()),
                "error": str(e),
                "duration_ms": int((_now() - start).total_seconds() * 1000),
            },
            status_code=500,
        )

    backup = result.backup
    if backup.success:
        create_audit_log(
            AuditAction.BACKUP_CREATED,
            entity_id=backup.key,
            metadata={
                "triggered_by": auth.triggered_by,
                "tables_backed_up": backup.tables_backed_up,
                "total_records": backup.total_records,
                "size_bytes": backup.size_bytes,
                "duration_ms": backup.duration_ms,
            },
            ip_address=ip_address,
            user_agent=user_agent,
        )
    else:
        create_audit_log(
            AuditAction.BACKUP_FAILED,
            metadata={"triggered_by": auth.triggered_by, "error": backup.error},
            ip_address=ip_address,
            user_agent=user_agent,
        )

    if result.cleanup.deleted_count > 0:
        create_audit_log(
            AuditAction.BACKUP_CLEANUP,
            metadata={
                "deleted_count": result.cleanup.deleted_count,
                "deleted_keys": result.cleanup.deleted_keys,
            },
            ip_address=ip_address,
            user_agent=user_agent,
        )

    body: dict[str, Any] = {
        "success": backup.success and result.cleanup.success,
        "timestamp": format_timestamp(_now()),
        "triggered_by": auth.triggered_by,
        "backup": {**backup.to_dict(), "size_mb": _size_mb(backup.size_bytes) if backup.key else None},
        "cleanup": result.cleanup.to_dict(),
        "stats": stats.to_dict(),
        "total_duration_ms": int((_now() - start).total_seconds() * 1000),
    }
    return JSONResponse(body, status_code=200 if backup.success else 500)


@router.get("/api/cron/db-backup")
async def backup_status(
    request: Request,
    service: BackupService = Depends(get_backup_service),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Archive statistics and backup health."""
    _authorize(request, settings.cron_secret, settings, service, "Unauthorized backup status access")

    now = _now()
    stats = await service.get_backup_stats()
    status = health(stats, now)

    return {
        "success": True,
        "timestamp": format_timestamp(now),
        "stats": {**stats.to_dict(), "days_since_last_backup": status.days_since_last_backup},
        "health": status.to_dict(),
        "config": {
            "retention_days": service.config.backup.retention_days,
            "schedule": service.config.backup.schedule_description,
        },
    }


@router.get("/api/admin/backups", response_model=BackupListResponse)
async def list_backups(
    request: Request,
    service: BackupService = Depends(get_backup_service),
    settings: Settings = Depends(get_settings),
) -> BackupListResponse:
    """List stored archives for restore operations."""
    _authorize(request, settings.admin_secret, settings, service, "Unauthorized backup list access attempt")

    now = _now()
    handles = await service.list_backups()

    entries = [
        BackupListEntry(
            key=h.key,
            size_bytes=h.size_bytes,
            size_mb=_size_mb(h.size_bytes),
            last_modified=format_timestamp(h.last_modified),
            age_in_days=(now - h.last_modified).days,
        )
        for h in handles
    ]

    by_date: dict[str, list[BackupListEntry]] = {}
    for handle, entry in zip(handles, entries):
        by_date.setdefault(archive_date(handle.key, service.prefix), []).append(entry)

    return BackupListResponse(
        timestamp=format_timestamp(now),
        count=len(entries),
        total_size_mb=_size_mb(sum(h.size_bytes for h in handles)),
        backups=entries,
        by_date=by_date,
        restore_instructions=RestoreInstructions(
            note="To restore a backup, pass its key to the restore tool",
            steps=[
                "1. Dry run first: lms-restore --remote <key> --dry-run",
                "2. Restore into a disposable database and check it",
                "3. Run: lms-restore --remote <key> --database <path>",
            ],
        ),
    )
