"""
Built-in LMS table declarations.

The registry is normally introspected from the live database
(load_lms_registry); the declarations here are the fallback when that is
not possible. The users table owns its credential accounts and sessions:
they are archived inline on each user row and split back out on restore.

Archives written by the previous exporter key tables by camelCase model
name ("courseLecturers") and rows by camelCase column ("courseId").
upgrade_legacy_document rewrites them to the current names.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Sequence

from ..errors import DatabaseError
from .registry import DependencyCycleError, TableRegistry
from .types import ChildCollection, TableDef, table

if TYPE_CHECKING:
    from ..db.sqlite import SqliteDatabase

logger = logging.getLogger(__name__)

USER_CHILDREN = (
    ChildCollection(field="accounts", table="accounts", foreign_key="user_id"),
    ChildCollection(field="sessions", table="sessions", foreign_key="user_id"),
)

LMS_TABLES: tuple[TableDef, ...] = (
    # Identity
    table("users", children=USER_CHILDREN),
    table("accounts", "users"),
    table("sessions", "users"),
    table("verification_tokens", primary_key="token"),
    # Courses and content
    table("courses"),
    table("course_lecturers", "courses", "users"),
    table("modules", "courses"),
    table("lessons", "modules"),
    table("lesson_resources", "lessons"),
    table("resource_versions", "lesson_resources", "users"),
    # Quizzes
    table("quizzes", "lessons"),
    table("quiz_questions", "quizzes"),
    table("quiz_answers", "quiz_questions"),
    table("quiz_attempts", "quizzes", "users"),
    table("quiz_responses", "quiz_attempts", "quiz_questions", "quiz_answers"),
    # Enrollment and progress
    table("course_enrollments", "courses", "users"),
    table("lesson_progress", "lessons", "users"),
    # Assignments
    table("assignments", "lessons"),
    table("assignment_submissions", "assignments", "users"),
    table("assignment_submission_attachments", "assignment_submissions"),
    table("submissions", "assignments", "users"),
    table("submission_attachments", "submissions"),
    table("uploaded_files", "users"),
    # System
    table("notifications", "users"),
    table("audit_logs", "users"),
)


def build_lms_registry(order_override: Optional[Sequence[str]] = None) -> TableRegistry:
    """Create and freeze a registry of the LMS tables."""
    registry = TableRegistry()
    for table_def in LMS_TABLES:
        registry.register(table_def)
    registry.freeze(order_override)
    return registry


# Migration bookkeeping, never archived
LMS_EXCLUDED_TABLES = ("_prisma_migrations",)

# Archive keys written by the previous exporter
LEGACY_TABLE_KEYS: Dict[str, str] = {
    "verificationTokens": "verification_tokens",
    "courseLecturers": "course_lecturers",
    "lessonResources": "lesson_resources",
    "resourceVersions": "resource_versions",
    "quizQuestions": "quiz_questions",
    "quizAnswers": "quiz_answers",
    "quizAttempts": "quiz_attempts",
    "quizResponses": "quiz_responses",
    "courseEnrollments": "course_enrollments",
    "lessonProgress": "lesson_progress",
    "assignmentSubmissions": "assignment_submissions",
    "assignmentSubmissionAttachments": "assignment_submission_attachments",
    "submissionAttachments": "submission_attachments",
    "uploadedFiles": "uploaded_files",
    "auditLogs": "audit_logs",
}

_CHILD_FIELDS = frozenset(child.field for child in USER_CHILDREN)
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


async def load_lms_registry(database: SqliteDatabase) -> TableRegistry:
    """Introspect the LMS registry, falling back to the built-in declarations."""
    try:
        registry = await database.introspect_registry(
            children={"users": USER_CHILDREN},
            exclude=LMS_EXCLUDED_TABLES,
        )
    except (sqlite3.Error, DatabaseError, DependencyCycleError) as e:
        logger.warning(
            f"Registry introspection failed, using built-in LMS tables: {e}",
            extra={"database": str(database.path)},
        )
        return build_lms_registry()

    if len(registry) == 0:
        logger.warning(
            "Database has no tables, using built-in LMS tables",
            extra={"database": str(database.path)},
        )
        return build_lms_registry()
    return registry


def snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def _upgrade_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    upgraded: Dict[str, Any] = {}
    for key, value in row.items():
        if key in _CHILD_FIELDS and isinstance(value, list):
            value = [_upgrade_row(v) if isinstance(v, Mapping) else v for v in value]
        upgraded[snake_case(key)] = value
    return upgraded


def is_legacy_document(document: Mapping[str, Any]) -> bool:
    """Whether an archive was written by the previous exporter."""
    metadata = document.get("metadata")
    data = document.get("data")
    if not isinstance(metadata, Mapping) or not isinstance(data, Mapping):
        return False
    checksum = str(metadata.get("checksum") or "")
    if checksum.startswith("sha256:"):
        return False
    return bool(checksum) or any(key in LEGACY_TABLE_KEYS for key in data)


def upgrade_legacy_document(document: Mapping[str, Any]) -> Mapping[str, Any]:
    """Rewrite a previous-exporter archive to current table and column names.

    Current archives, and anything not shaped like an archive, are returned
    unchanged. Metadata (checksum included) is kept as written.
    """
    if not isinstance(document, Mapping) or not is_legacy_document(document):
        return document

    data: Dict[str, Any] = {}
    for key, rows in document["data"].items():
        name = LEGACY_TABLE_KEYS.get(key, key)
        if isinstance(rows, list):
            rows = [_upgrade_row(r) if isinstance(r, Mapping) else r for r in rows]
        data[name] = rows

    renamed = sorted(key for key in document["data"] if key in LEGACY_TABLE_KEYS)
    logger.info("Upgrading legacy archive", extra={"renamed_tables": renamed})
    return {**document, "data": data}
