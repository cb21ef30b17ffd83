"""
Audit trail for backup operations.

Every trigger of the backup endpoints leaves a structured record on this
module's logger. Log shippers route it to the audit store by logger name.

Invariants:
    - One record per event, never batched
    - Records carry the client IP and user agent when known
    - Secrets and archive contents never appear in records
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    BACKUP_CREATED = "BACKUP_CREATED"
    BACKUP_FAILED = "BACKUP_FAILED"
    BACKUP_CLEANUP = "BACKUP_CLEANUP"
    SYSTEM_WARNING = "SYSTEM_WARNING"


def create_audit_log(
    action: AuditAction,
    entity_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> None:
    """Emit one audit record for a backup event."""
    level = logging.INFO
    if action in (AuditAction.BACKUP_FAILED, AuditAction.SYSTEM_WARNING):
        level = logging.WARNING

    logger.log(
        level,
        action.value,
        extra={
            "audit_action": action.value,
            "entity_type": "Backup",
            "entity_id": entity_id,
            "audit_metadata": metadata or {},
            "ip_address": ip_address,
            "user_agent": user_agent,
        },
    )
