"""
Restore tool for LMS backup archives.

This tool replaces the LMS database contents with an archive:
1. Load the archive (local file or blob store key), decompressing .gz
2. Validate structure and checksum, print a summary
3. Ask for confirmation (skipped with --force)
4. Wipe every table, reverse dependency order
5. Reinsert every table, dependency order

Usage:
    lms-restore backups/2024-06-01/2024-06-01_02-00-00_full.json.gz --remote --dry-run
    lms-restore ./backup.json --database /tmp/lms-restore.db --force

Invariants:
    - Dry run never opens a write on the database
    - Exit code 0 only on success or completed dry run
    - Cancellation and every failure exit 1

How to change safely:
    - Restore into a disposable database before a live one
    - Keep the prompt answer set ("yes", "y") stable for runbooks
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..archive.codec import read_archive_bytes, read_archive_file
from ..config import DatabaseConfig, S3Config
from ..db.sqlite import SqliteDatabase
from ..errors import BackupError
from ..restore.engine import RestoreEngine, RestoreReport, RestoreState, ValidationResult
from ..schema.lms import load_lms_registry, upgrade_legacy_document
from ..snapshot.models import format_timestamp
from ..storage.s3 import S3BlobStore

logger = logging.getLogger(__name__)

CONFIRM_ANSWERS = ("yes", "y")


@dataclass
class RestoreOptions:
    """Restore invocation options.

    Attributes:
        archive: Local path, or blob store key when remote is set
        database_path: SQLite database to restore into
        dry_run: Validate only
        force: Skip the confirmation prompt
        verify_checksum: Refuse archives whose checksum mismatches
        remote: Download the archive from the blob store first
    """

    archive: str
    database_path: str
    dry_run: bool = False
    force: bool = False
    verify_checksum: bool = True
    remote: bool = False


def print_summary(validation: ValidationResult) -> None:
    """Print what the archive contains."""
    metadata = validation.metadata
    print("Backup Information:")
    print(f"  Version: {metadata.format_version}")
    print(f"  Created: {format_timestamp(metadata.created_at)}")
    print(f"  Environment: {metadata.environment}")
    print(f"  Total Records: {metadata.total_records}")
    print(f"  Checksum: {metadata.checksum or 'none'} ({validation.checksum_status.value})")
    print()
    print("Table Summary:")
    for name, count in validation.table_counts.items():
        print(f"  {name}: {count} records")
    for name, count in validation.child_counts.items():
        print(f"  {name} (nested): {count} records")
    if validation.unknown_tables:
        print()
        print(f"Ignored tables (not in schema): {', '.join(validation.unknown_tables)}")


def completed_tables(report: RestoreReport) -> List[str]:
    """Tables that received rows before a restore stopped."""
    return [t.table for t in report.tables if t.inserted or t.skipped]


def prompt_confirmation(validation: ValidationResult) -> bool:
    """Ask the operator to confirm the destructive restore."""
    print()
    print("WARNING: This will DELETE ALL existing data and replace it with the backup!")
    try:
        answer = input("Are you sure you want to continue? Type 'yes' to confirm: ")
    except EOFError:
        return False
    return answer.strip().lower() in CONFIRM_ANSWERS


class RestoreTool:
    """Loads an archive and drives the restore engine.

    Example:
        >>> tool = RestoreTool(RestoreOptions(archive="backup.json.gz", database_path="lms.db"))
        >>> report = await tool.restore()
        >>> report.success
        True
    """

    def __init__(
        self,
        options: RestoreOptions,
        s3_config: Optional[S3Config] = None,
        database: Optional[SqliteDatabase] = None,
    ) -> None:
        self.options = options
        self.s3_config = s3_config
        self.database = database or SqliteDatabase(options.database_path)

    async def load_document(self) -> Dict[str, Any]:
        """Read and decode the archive.

        Raises:
            InvalidFormatError: If the archive cannot be read or decoded
            StorageError: If a remote archive cannot be downloaded
        """
        if not self.options.remote:
            logger.info(f"Reading backup file: {self.options.archive}")
            return read_archive_file(self.options.archive)

        s3_config = self.s3_config or S3Config.from_env()
        logger.info(f"Downloading backup s3://{s3_config.bucket}/{self.options.archive}")
        async with S3BlobStore(s3_config) as store:
            body = await store.get(self.options.archive)
        return read_archive_bytes(body, self.options.archive)

    async def restore(self) -> RestoreReport:
        """Run the restore; failures are returned in the report."""
        try:
            document = await self.load_document()
        except BackupError as e:
            logger.error(f"Failed to load backup: {e}")
            return RestoreReport(state=RestoreState.FAILED, dry_run=self.options.dry_run, error=str(e))

        registry = await load_lms_registry(self.database)
        engine = RestoreEngine(self.database, registry, upgrade=upgrade_legacy_document)

        def confirm(validation: ValidationResult) -> bool:
            print_summary(validation)
            return prompt_confirmation(validation)

        report = await engine.restore(
            document,
            dry_run=self.options.dry_run,
            force=self.options.force,
            confirm=confirm,
            verify_checksum=self.options.verify_checksum,
        )
        if report.validation is not None and (self.options.dry_run or self.options.force):
            print_summary(report.validation)
        return report


def main() -> None:
    """CLI entry point for restore tool."""
    parser = argparse.ArgumentParser(description="Restore the LMS database from a backup archive")
    parser.add_argument("archive", help="Path to backup file (.json or .json.gz), or key with --remote")
    parser.add_argument("--dry-run", action="store_true", help="Validate without making changes")
    parser.add_argument("--force", action="store_true", help="Skip confirmation prompt")
    parser.add_argument(
        "--no-verify-checksum", action="store_true", help="Restore even if the checksum mismatches"
    )
    parser.add_argument("--remote", action="store_true", help="Download the archive from the bucket")
    parser.add_argument("--database", help="SQLite database path (default: DATABASE_PATH)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    args = parser.parse_args()

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    options = RestoreOptions(
        archive=args.archive,
        database_path=args.database or DatabaseConfig.from_env().path,
        dry_run=args.dry_run,
        force=args.force,
        verify_checksum=not args.no_verify_checksum,
        remote=args.remote,
    )

    tool = RestoreTool(options)
    report = asyncio.run(tool.restore())

    if report.state == RestoreState.DRY_RUN_REPORTED:
        print("Dry run complete: backup file is valid, no changes made")
        sys.exit(0)
    elif report.state == RestoreState.DONE:
        print("Restore completed successfully")
        for table in report.tables:
            suffix = f", {table.skipped} skipped" if table.skipped else ""
            print(f"  {table.table}: {table.inserted} records{suffix}")
        if report.ignored_tables:
            print(f"  Ignored: {', '.join(report.ignored_tables)}")
        print(f"  Duration: {report.duration_ms}ms")
        sys.exit(0)
    elif report.state == RestoreState.CANCELLED:
        print("Restore cancelled")
        sys.exit(1)
    else:
        print(f"Restore failed: {report.error}")
        if report.failed_table:
            print(
                "  Database is partially restored; completed tables: "
                f"{', '.join(completed_tables(report)) or 'none'}"
            )
        sys.exit(1)


if __name__ == "__main__":
    main()
