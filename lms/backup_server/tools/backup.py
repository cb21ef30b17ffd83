"""
Backup tool: runs the backup job once from the command line.

For hosts that schedule backups with cron instead of the HTTP trigger.

Usage:
    lms-backup                 # backup, then cleanup
    lms-backup --cleanup-only  # only delete expired archives
    lms-backup --stats         # print archive statistics
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from ..config import ServiceConfig
from ..db.sqlite import SqliteDatabase
from ..jobs.service import BackupService, health
from ..schema.lms import load_lms_registry
from ..storage.s3 import S3BlobStore

logger = logging.getLogger(__name__)


async def run(config: ServiceConfig, cleanup_only: bool = False, stats_only: bool = False) -> bool:
    """Run the requested operation; returns overall success."""
    async with S3BlobStore(config.s3) as store:
        database = SqliteDatabase.from_config(config.database)
        service = BackupService(
            database,
            await load_lms_registry(database),
            store,
            config,
        )

        if stats_only:
            stats = await service.get_backup_stats()
            print(json.dumps({**stats.to_dict(), "health": health(stats).to_dict()}, indent=2))
            return True

        if cleanup_only:
            cleanup = await service.cleanup_old_backups()
            print(json.dumps(cleanup.to_dict(), indent=2))
            return cleanup.success

        result = await service.run_backup_job()
        print(json.dumps(result.to_dict(), indent=2))
        return result.backup.success


def main() -> None:
    """CLI entry point for backup tool."""
    parser = argparse.ArgumentParser(description="Back up the LMS database to object storage")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--cleanup-only", action="store_true", help="Only delete expired archives")
    group.add_argument("--stats", action="store_true", help="Print archive statistics")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        config = ServiceConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}")
        sys.exit(1)

    try:
        ok = asyncio.run(run(config, cleanup_only=args.cleanup_only, stats_only=args.stats))
    except Exception as e:
        logger.error(f"Backup tool failed: {e}", exc_info=True)
        sys.exit(1)

    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
