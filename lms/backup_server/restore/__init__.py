"""
Restore module for backup archives.

Invariants:
    - Validation and confirmation precede any mutation
    - Wipe order is the reverse of insert order
"""

from .engine import (
    ChecksumStatus,
    RestoreEngine,
    RestorePlan,
    RestoreReport,
    RestoreState,
    TableRestoreResult,
    ValidationResult,
)

__all__ = [
    "ChecksumStatus",
    "RestoreEngine",
    "RestorePlan",
    "RestoreReport",
    "RestoreState",
    "TableRestoreResult",
    "ValidationResult",
]
