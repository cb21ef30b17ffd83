"""
Error types for the LMS backup server.

This module defines the exceptions raised by the backup pipeline:
- BackupError: Base exception
- AuthorizationError: Missing or wrong shared secret on a trigger
- StorageError: Object store upload/list/delete/download failure
- DatabaseError: Database read/delete/insert failure
- InvalidFormatError: Malformed archive on restore
- ChecksumMismatchError: Archive data does not match its checksum
- PartialRestoreFailure: A table failed mid-restore

Invariants:
    - All errors inherit from BackupError
    - Errors include context (table, phase, key) for debugging
    - Secrets never appear in error messages
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class BackupError(Exception):
    """Base exception for all backup server errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "BACKUP_ERROR"
        self.details = details or {}


class AuthorizationError(BackupError):
    """Trigger request was not authorized.

    Raised before any work begins when:
    - No shared secret is configured outside development
    - The bearer token does not match the secret
    """

    def __init__(self, message: str) -> None:
        super().__init__(message, code="UNAUTHORIZED")


class StorageError(BackupError):
    """Object store operation failed.

    Job-fatal. Retries are left to the external scheduler.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        key: Optional[str] = None,
        failed_keys: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="STORAGE_ERROR",
            details={"operation": operation, "key": key, "failed_keys": failed_keys or []},
        )
        self.operation = operation
        self.key = key
        self.failed_keys = failed_keys or []


class DatabaseError(BackupError):
    """Database operation failed for a table."""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        phase: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="DATABASE_ERROR",
            details={"table": table, "phase": phase},
        )
        self.table = table
        self.phase = phase


class InvalidFormatError(BackupError):
    """Archive is malformed.

    Always raised before any database mutation.
    """

    def __init__(self, message: str, source: Optional[str] = None) -> None:
        super().__init__(message, code="INVALID_FORMAT", details={"source": source})
        self.source = source


class ChecksumMismatchError(InvalidFormatError):
    """Archive data does not hash to the checksum in its metadata."""

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(f"Checksum mismatch: metadata has {expected}, data hashes to {actual}")
        self.code = "CHECKSUM_MISMATCH"
        self.details = {"expected": expected, "actual": actual}
        self.expected = expected
        self.actual = actual


class PartialRestoreFailure(BackupError):
    """A table's reinsert failed mid-restore.

    The database is left partially restored: tables listed in
    restored_tables keep their rows, later tables were never attempted.
    """

    def __init__(
        self,
        table: str,
        cause: BaseException,
        restored_tables: Optional[List[str]] = None,
    ) -> None:
        restored = restored_tables or []
        super().__init__(
            f"Restore failed on table '{table}': {cause}",
            code="PARTIAL_RESTORE",
            details={"table": table, "phase": "reinsert", "restored_tables": restored},
        )
        self.table = table
        self.cause = cause
        self.restored_tables = restored
