"""
Unit tests for the backup job service.

Tests cover:
- Backup creation and upload tags
- Failure reporting
- Cleanup through the sweeper
- Archive statistics and health
"""

from datetime import datetime, timedelta, timezone

import pytest

from lms.backup_server.archive.codec import decompress, decode_document
from lms.backup_server.config import BackupConfig, S3Config, ServiceConfig
from lms.backup_server.db.memory import InMemoryDatabase
from lms.backup_server.jobs.service import (
    HEALTHY,
    WARNING,
    BackupService,
    BackupStats,
    archive_date,
    health,
)
from lms.backup_server.schema.registry import TableRegistry
from lms.backup_server.schema.types import table
from lms.backup_server.storage.base import ArchiveHandle
from lms.backup_server.storage.memory import InMemoryBlobStore

NOW = datetime(2024, 6, 15, 2, 0, 5, tzinfo=timezone.utc)


@pytest.fixture
def registry():
    registry = TableRegistry()
    registry.register(table("courses"))
    registry.register(table("modules", "courses"))
    registry.freeze()
    return registry


@pytest.fixture
def database():
    return InMemoryDatabase(
        {
            "courses": [{"id": 1, "title": "Algebra"}],
            "modules": [{"id": 10, "course_id": 1}, {"id": 11, "course_id": 1}],
        }
    )


@pytest.fixture
def store():
    return InMemoryBlobStore(clock=lambda: NOW)


@pytest.fixture
def config():
    return ServiceConfig(
        s3=S3Config(bucket="test-bucket"),
        backup=BackupConfig(retention_days=14, environment="test"),
    )


@pytest.fixture
def service(database, registry, store, config):
    return BackupService(database, registry, store, config)


class TestCreateBackup:
    """Tests for BackupService.create_backup."""

    @pytest.mark.asyncio
    async def test_uploads_archive(self, service, store):
        result = await service.create_backup(now=NOW)

        assert result.success
        assert result.key == "backups/2024-06-15/2024-06-15_02-00-05_full.json.gz"
        assert result.tables_backed_up == 2
        assert result.total_records == 3
        assert result.size_bytes == len(store.objects[result.key].body)
        assert result.error is None

    @pytest.mark.asyncio
    async def test_archive_content(self, service, store):
        result = await service.create_backup(now=NOW)
        stored = store.objects[result.key]

        document = decode_document(decompress(stored.body))

        assert stored.content_type == "application/gzip"
        assert document["metadata"]["environment"] == "test"
        assert document["metadata"]["totalRecords"] == 3
        assert document["metadata"]["createdAt"] == "2024-06-15T02:00:05.000Z"
        assert document["data"]["modules"] == [{"id": 10, "course_id": 1}, {"id": 11, "course_id": 1}]

    @pytest.mark.asyncio
    async def test_upload_tags(self, service, store):
        result = await service.create_backup(now=NOW)
        tags = store.objects[result.key].tags

        assert tags["backup-version"] == "1.0.0"
        assert tags["backup-date"] == "2024-06-15T02:00:05.000Z"
        assert tags["total-records"] == "3"
        assert tags["checksum"] == result.checksum

    @pytest.mark.asyncio
    async def test_export_failure_skips_upload(self, service, database, store):
        database.fail_reads.add("modules")

        result = await service.create_backup(now=NOW)

        assert not result.success
        assert "modules" in result.error
        assert store.objects == {}

    @pytest.mark.asyncio
    async def test_upload_failure_reported(self, service, store):
        store.fail_operations.add("put")

        result = await service.create_backup(now=NOW)

        assert not result.success
        assert result.key is None
        assert "put" in result.error


class TestCleanup:
    """Tests for cleanup and the full job."""

    @pytest.mark.asyncio
    async def test_cleanup_deletes_expired(self, service, store):
        store.add_object("backups/2024-05-01/old_full.json.gz", b"x", NOW - timedelta(days=45))
        store.add_object("backups/2024-06-14/new_full.json.gz", b"x", NOW - timedelta(days=1))

        result = await service.cleanup_old_backups(now=NOW)

        assert result.success
        assert result.deleted_keys == ["backups/2024-05-01/old_full.json.gz"]

    @pytest.mark.asyncio
    async def test_cleanup_failure_reported(self, service, store):
        store.fail_operations.add("list")

        result = await service.cleanup_old_backups(now=NOW)

        assert not result.success
        assert result.error

    @pytest.mark.asyncio
    async def test_job_runs_backup_then_cleanup(self, service, store):
        store.add_object("backups/2024-05-01/old_full.json.gz", b"x", NOW - timedelta(days=45))

        result = await service.run_backup_job(now=NOW)

        assert result.success
        assert result.cleanup.deleted_count == 1
        assert list(store.objects) == ["backups/2024-06-15/2024-06-15_02-00-05_full.json.gz"]

    @pytest.mark.asyncio
    async def test_cleanup_runs_after_failed_backup(self, service, database, store):
        database.fail_reads.add("courses")
        store.add_object("backups/2024-05-01/old_full.json.gz", b"x", NOW - timedelta(days=45))

        result = await service.run_backup_job(now=NOW)

        assert not result.success
        assert result.cleanup.deleted_count == 1


class TestStats:
    """Tests for listing, statistics and health."""

    @pytest.mark.asyncio
    async def test_stats(self, service, store):
        store.add_object("backups/2024-06-13/a_full.json.gz", b"xx", NOW - timedelta(days=2))
        store.add_object("backups/2024-06-14/b_full.json.gz", b"xxx", NOW - timedelta(days=1))
        store.add_object("backups/2024-06-14/c_full.json.gz", b"x", NOW - timedelta(hours=20))

        stats = await service.get_backup_stats()

        assert stats.total_backups == 3
        assert stats.total_size == 6
        assert stats.newest.key == "backups/2024-06-14/c_full.json.gz"
        assert stats.oldest.key == "backups/2024-06-13/a_full.json.gz"
        assert stats.by_date == {"2024-06-14": 2, "2024-06-13": 1}

    @pytest.mark.asyncio
    async def test_stats_empty(self, service):
        stats = await service.get_backup_stats()

        assert stats.total_backups == 0
        assert stats.newest is None

    @pytest.mark.asyncio
    async def test_list_newest_first(self, service, store):
        store.add_object("backups/2024-06-01/a_full.json.gz", b"x", NOW - timedelta(days=14))
        store.add_object("backups/2024-06-14/b_full.json.gz", b"x", NOW - timedelta(days=1))

        handles = await service.list_backups()

        assert [h.key for h in handles] == [
            "backups/2024-06-14/b_full.json.gz",
            "backups/2024-06-01/a_full.json.gz",
        ]

    def test_health_current(self):
        newest = ArchiveHandle(key="k", size_bytes=1, last_modified=NOW - timedelta(hours=30))

        status = health(BackupStats(total_backups=1, newest=newest, oldest=newest), NOW)

        assert status.status == HEALTHY
        assert status.days_since_last_backup == 1

    def test_health_stale(self):
        newest = ArchiveHandle(key="k", size_bytes=1, last_modified=NOW - timedelta(days=3))

        status = health(BackupStats(total_backups=1, newest=newest, oldest=newest), NOW)

        assert status.status == WARNING
        assert "3 days" in status.message

    def test_health_no_backups(self):
        status = health(BackupStats(), NOW)

        assert status.status == WARNING
        assert status.days_since_last_backup is None

    def test_archive_date(self):
        assert archive_date("backups/2024-06-14/x_full.json.gz", "backups/") == "2024-06-14"
        assert archive_date("backups/stray.json.gz", "backups/") == "unknown"
