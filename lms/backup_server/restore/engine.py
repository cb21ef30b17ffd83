"""
Restore engine for backup archives.

Replaces the contents of the LMS database with an archive:

    LOADED -> VALIDATED -> DRY_RUN_REPORTED
                        -> CONFIRMATION_PENDING -> CONFIRMED | CANCELLED
    CONFIRMED -> WIPING -> REINSERTING -> DONE
    any state -> FAILED

Invariants:
    - Nothing is written before validation and confirmation succeed
    - Tables are wiped in the exact reverse of registry order
    - Tables are reinserted in the exact registry order
    - Child collections are split off their parent rows and inserted
      into their own tables at those tables' positions in the order
    - Unique-key collisions are skipped and counted per table
    - The first table that fails to insert stops the restore; tables
      already inserted stay (no rollback)

How to change safely:
    - Always restore into a disposable target first
    - Take a fresh backup of the target before a live restore
    - Test with archives written by every released format version
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..db.base import Database, Row
from ..errors import ChecksumMismatchError, InvalidFormatError, PartialRestoreFailure
from ..schema.registry import TableRegistry
from ..snapshot.exporter import compute_checksum
from ..snapshot.models import SnapshotMetadata

logger = logging.getLogger(__name__)


class RestoreState(Enum):
    """Lifecycle of one restore invocation."""

    LOADED = "loaded"
    VALIDATED = "validated"
    DRY_RUN_REPORTED = "dry_run_reported"
    CONFIRMATION_PENDING = "confirmation_pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    WIPING = "wiping"
    REINSERTING = "reinserting"
    DONE = "done"
    FAILED = "failed"


class ChecksumStatus(Enum):
    VERIFIED = "verified"
    SKIPPED = "skipped"
    MISSING = "missing"
    UNVERIFIABLE = "unverifiable"


@dataclass
class ValidationResult:
    """What an archive contains, for operator review.

    Attributes:
        metadata: Parsed archive metadata
        table_counts: Rows per archived table, in archive order
        child_counts: Rows per child collection table, flattened from parents
        unknown_tables: Archived tables the registry does not know
        checksum_status: Outcome of checksum verification
    """

    metadata: SnapshotMetadata
    table_counts: Dict[str, int]
    child_counts: Dict[str, int] = field(default_factory=dict)
    unknown_tables: List[str] = field(default_factory=list)
    checksum_status: ChecksumStatus = ChecksumStatus.SKIPPED

    @property
    def total_records(self) -> int:
        return sum(self.table_counts.values())


@dataclass
class RestorePlan:
    """Ordered work for one restore.

    Attributes:
        delete_order: Tables to wipe, descending dependency rank
        insert_order: Tables to fill, ascending dependency rank
        rows: Rows to insert per table, child collections already flattened
    """

    delete_order: List[str]
    insert_order: List[str]
    rows: Dict[str, List[Row]]


@dataclass
class TableRestoreResult:
    """Reinsert outcome for one table."""

    table: str
    inserted: int
    skipped: int = 0


@dataclass
class RestoreReport:
    """Outcome of a restore invocation.

    Attributes:
        state: Final state
        dry_run: Whether the run was a dry run
        validation: Validation summary (None if validation failed)
        wiped: Rows deleted per table
        wipe_skipped: Tables whose delete failed, with the reason
        tables: Reinsert results in insert order
        ignored_tables: Archived tables not in the registry
        failed_table: Table whose reinsert failed
        error: Error message if failed
        duration_ms: Total duration
    """

    state: RestoreState
    dry_run: bool = False
    validation: Optional[ValidationResult] = None
    wiped: Dict[str, int] = field(default_factory=dict)
    wipe_skipped: Dict[str, str] = field(default_factory=dict)
    tables: List[TableRestoreResult] = field(default_factory=list)
    ignored_tables: List[str] = field(default_factory=list)
    failed_table: Optional[str] = None
    error: Optional[str] = None
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.state in (RestoreState.DONE, RestoreState.DRY_RUN_REPORTED)

    @property
    def skipped_rows(self) -> Dict[str, int]:
        return {t.table: t.skipped for t in self.tables if t.skipped}


ConfirmCallback = Callable[[ValidationResult], bool]
DocumentUpgrade = Callable[[Mapping[str, Any]], Mapping[str, Any]]


class RestoreEngine:
    """Validates an archive and restores it into the database.

    Example:
        >>> engine = RestoreEngine(database, registry)
        >>> report = await engine.restore(document, force=True)
        >>> report.state
        <RestoreState.DONE: 'done'>
    """

    def __init__(
        self,
        database: Database,
        registry: TableRegistry,
        upgrade: Optional[DocumentUpgrade] = None,
    ) -> None:
        """Initialize the restore engine.

        Args:
            database: Database gateway to restore into
            registry: Frozen table registry
            upgrade: Rewrites older archive layouts before validation
        """
        self.database = database
        self.registry = registry
        self.upgrade = upgrade
        self.state = RestoreState.LOADED

    def validate(
        self,
        document: Mapping[str, Any],
        verify_checksum: bool = True,
    ) -> ValidationResult:
        """Check archive structure and summarise its contents.

        Raises:
            InvalidFormatError: If metadata or data is missing or malformed
            ChecksumMismatchError: If a sha256 checksum does not match the data
        """
        if not isinstance(document, Mapping):
            raise InvalidFormatError("Invalid backup format: document is not an object")
        metadata = document.get("metadata")
        data = document.get("data")
        if not isinstance(metadata, Mapping) or not isinstance(data, Mapping):
            raise InvalidFormatError("Invalid backup format: missing metadata or data")

        for name, rows in data.items():
            if not isinstance(rows, list) or not all(isinstance(r, Mapping) for r in rows):
                raise InvalidFormatError(f"Invalid backup format: table '{name}' is not a list of rows")

        try:
            parsed = SnapshotMetadata.from_dict(dict(metadata))
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidFormatError(f"Invalid backup metadata: {e}")

        table_counts = {name: len(rows) for name, rows in data.items()}
        unknown = [name for name in data if name not in self.registry]

        child_counts: Dict[str, int] = {}
        for name, rows in data.items():
            spec = self.registry.get(name)
            if spec is None:
                continue
            for child in spec.children:
                child_counts[child.table] = child_counts.get(child.table, 0) + sum(
                    len(row.get(child.field) or []) for row in rows
                )

        result = ValidationResult(
            metadata=parsed,
            table_counts=table_counts,
            child_counts=child_counts,
            unknown_tables=unknown,
            checksum_status=self._check_checksum(parsed.checksum, data, verify_checksum),
        )
        self.state = RestoreState.VALIDATED
        return result

    def _check_checksum(
        self,
        expected: str,
        data: Mapping[str, Any],
        verify: bool,
    ) -> ChecksumStatus:
        if not verify:
            return ChecksumStatus.SKIPPED
        if not expected:
            logger.warning("Archive has no checksum; restoring unverified")
            return ChecksumStatus.MISSING
        if not expected.startswith("sha256:"):
            logger.warning(f"Archive checksum '{expected}' uses a legacy format and cannot be verified")
            return ChecksumStatus.UNVERIFIABLE

        actual = compute_checksum(dict(data))
        if actual != expected:
            raise ChecksumMismatchError(expected, actual)
        return ChecksumStatus.VERIFIED

    def plan(self, document: Mapping[str, Any]) -> RestorePlan:
        """Order the work and split child collections off parent rows."""
        data: Mapping[str, List[Row]] = document["data"]
        specs = self.registry.list_tables_in_dependency_order()
        rows: Dict[str, List[Row]] = {}

        for spec in specs:
            if spec.is_child:
                # Rows archived under the child's own key join the flattened ones
                rows.setdefault(spec.name, []).extend(data.get(spec.name) or [])
                continue

            parents: List[Row] = []
            for row in data.get(spec.name) or []:
                parent = dict(row)
                for child in spec.children:
                    nested = parent.pop(child.field, None) or []
                    rows.setdefault(child.table, []).extend(nested)
                parents.append(parent)
            rows[spec.name] = parents

        return RestorePlan(
            delete_order=[spec.name for spec in reversed(specs)],
            insert_order=[spec.name for spec in specs],
            rows=rows,
        )

    async def wipe_all(
        self,
        plan: RestorePlan,
        report: Optional[RestoreReport] = None,
    ) -> RestoreReport:
        """Delete every table, descending rank; failures are skipped."""
        report = report or RestoreReport(state=self.state)
        self.state = RestoreState.WIPING
        logger.info("Clearing existing data...")

        for name in plan.delete_order:
            try:
                deleted = await self.database.delete_all(name)
            except Exception as e:
                logger.warning(f"Skipped clearing {name}: {e}", extra={"table": name, "phase": "wipe"})
                report.wipe_skipped[name] = str(e)
                continue
            report.wiped[name] = deleted
            logger.info(f"Cleared {name}: {deleted} records")

        return report

    async def reinsert_all(
        self,
        plan: RestorePlan,
        report: Optional[RestoreReport] = None,
    ) -> RestoreReport:
        """Insert every table, ascending rank.

        Raises:
            PartialRestoreFailure: On the first table that fails
        """
        report = report or RestoreReport(state=self.state)
        self.state = RestoreState.REINSERTING
        logger.info("Restoring data...")
        restored: List[str] = []

        for name in plan.insert_order:
            records = plan.rows.get(name) or []
            if not records:
                logger.info(f"Skipped {name}: no records")
                report.tables.append(TableRestoreResult(table=name, inserted=0))
                continue

            try:
                result = await self.database.insert_many(name, records)
            except Exception as e:
                logger.error(
                    f"Failed to restore {name}: {e}",
                    extra={"table": name, "phase": "reinsert", "restored_tables": restored},
                )
                raise PartialRestoreFailure(name, e, restored_tables=restored) from e

            restored.append(name)
            report.tables.append(
                TableRestoreResult(table=name, inserted=result.inserted, skipped=result.skipped)
            )
            if result.skipped:
                logger.warning(
                    f"Restored {name}: {result.inserted} records, "
                    f"{result.skipped} skipped as duplicates",
                    extra={"table": name, "skipped": result.skipped},
                )
            else:
                logger.info(f"Restored {name}: {result.inserted} records")

        return report

    async def restore(
        self,
        document: Mapping[str, Any],
        dry_run: bool = False,
        force: bool = False,
        confirm: Optional[ConfirmCallback] = None,
        verify_checksum: bool = True,
    ) -> RestoreReport:
        """Validate, confirm, wipe and reinsert.

        Args:
            document: Decoded archive ({"metadata": ..., "data": ...})
            dry_run: Stop after validation, never touch the database
            force: Skip confirmation (automation)
            confirm: Asked with the validation summary unless force is set
            verify_checksum: Refuse archives whose sha256 checksum mismatches

        Returns:
            RestoreReport; failures are reported, not raised
        """
        start_time = time.time()
        self.state = RestoreState.LOADED
        report = RestoreReport(state=self.state, dry_run=dry_run)

        try:
            if self.upgrade is not None:
                document = self.upgrade(document)
            report.validation = self.validate(document, verify_checksum=verify_checksum)
            report.ignored_tables = list(report.validation.unknown_tables)
            if report.ignored_tables:
                logger.warning(
                    "Archive tables not in the registry will be ignored",
                    extra={"tables": report.ignored_tables},
                )

            if dry_run:
                self.state = RestoreState.DRY_RUN_REPORTED
                logger.info("Dry run: backup file is valid, no changes made")
                return self._finish(report, start_time)

            if not force:
                self.state = RestoreState.CONFIRMATION_PENDING
                if confirm is None or not confirm(report.validation):
                    self.state = RestoreState.CANCELLED
                    logger.info("Restore cancelled")
                    return self._finish(report, start_time)
            self.state = RestoreState.CONFIRMED

            plan = self.plan(document)
            await self.wipe_all(plan, report)
            await self.reinsert_all(plan, report)
            self.state = RestoreState.DONE
            logger.info("Database restore completed", extra={"tables": len(report.tables)})

        except PartialRestoreFailure as e:
            self.state = RestoreState.FAILED
            report.failed_table = e.table
            report.error = str(e)
            logger.error(f"Restore failed: {e}", exc_info=True)
        except Exception as e:
            self.state = RestoreState.FAILED
            report.error = str(e)
            logger.error(f"Restore failed: {e}", exc_info=True)

        return self._finish(report, start_time)

    def _finish(self, report: RestoreReport, start_time: float) -> RestoreReport:
        report.state = self.state
        report.duration_ms = int((time.time() - start_time) * 1000)
        return report
