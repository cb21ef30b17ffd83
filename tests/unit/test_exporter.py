"""
Unit tests for the snapshot exporter.

Tests cover:
- Dependency-ordered reads
- Child collection inlining
- Metadata counts and checksum
- Failure propagation
"""

from datetime import datetime, timezone

import pytest

from lms.backup_server.db.memory import InMemoryDatabase
from lms.backup_server.errors import DatabaseError
from lms.backup_server.schema.registry import TableRegistry
from lms.backup_server.schema.types import ChildCollection, table
from lms.backup_server.snapshot.exporter import SnapshotExporter, compute_checksum
from lms.backup_server.snapshot.models import SnapshotDocument


@pytest.fixture
def registry():
    registry = TableRegistry()
    registry.register(
        table(
            "users",
            children=(ChildCollection(field="accounts", table="accounts", foreign_key="user_id"),),
        )
    )
    registry.register(table("accounts", "users"))
    registry.register(table("enrollments", "courses", "users"))
    registry.register(table("courses"))
    registry.freeze()
    return registry


@pytest.fixture
def database():
    return InMemoryDatabase(
        {
            "users": [{"id": 1, "email": "a@example.com"}, {"id": 2, "email": "b@example.com"}],
            "accounts": [
                {"id": 10, "user_id": 1, "provider": "google"},
                {"id": 11, "user_id": 1, "provider": "github"},
            ],
            "courses": [{"id": 100, "title": "Algebra"}],
            "enrollments": [{"id": 1000, "course_id": 100, "user_id": 2}],
        }
    )


class TestSnapshotExporter:
    """Tests for SnapshotExporter."""

    @pytest.mark.asyncio
    async def test_reads_in_dependency_order(self, database, registry):
        await SnapshotExporter(database, registry).export_snapshot()

        assert database.calls_for("fetch") == ["users", "accounts", "courses", "enrollments"]

    @pytest.mark.asyncio
    async def test_children_inlined_on_parent(self, database, registry):
        document = await SnapshotExporter(database, registry).export_snapshot()

        users = {row["id"]: row for row in document.data["users"]}
        assert [a["id"] for a in users[1]["accounts"]] == [10, 11]
        assert users[2]["accounts"] == []
        assert "accounts" not in document.data

    @pytest.mark.asyncio
    async def test_metadata_counts(self, database, registry):
        now = datetime(2024, 6, 1, 2, 0, tzinfo=timezone.utc)
        document = await SnapshotExporter(database, registry, environment="production").export_snapshot(now=now)
        metadata = document.metadata

        assert metadata.created_at == now
        assert metadata.environment == "production"
        assert metadata.format_version == "1.0.0"
        assert [(t.name, t.count) for t in metadata.tables] == [
            ("users", 2),
            ("courses", 1),
            ("enrollments", 1),
        ]
        assert metadata.total_records == sum(t.count for t in metadata.tables) == 4

    @pytest.mark.asyncio
    async def test_checksum_covers_data(self, database, registry):
        document = await SnapshotExporter(database, registry).export_snapshot()

        assert document.metadata.checksum == compute_checksum(document.data)
        assert document.metadata.checksum.startswith("sha256:")

    @pytest.mark.asyncio
    async def test_empty_database(self, registry):
        document = await SnapshotExporter(InMemoryDatabase(), registry).export_snapshot()

        assert document.metadata.total_records == 0
        assert document.data == {"users": [], "courses": [], "enrollments": []}

    @pytest.mark.asyncio
    async def test_read_failure_fails_export(self, database, registry):
        database.fail_reads.add("courses")

        with pytest.raises(DatabaseError) as exc_info:
            await SnapshotExporter(database, registry).export_snapshot()

        assert exc_info.value.table == "courses"
        assert exc_info.value.phase == "export"

    @pytest.mark.asyncio
    async def test_document_round_trips_through_dict(self, database, registry):
        document = await SnapshotExporter(database, registry).export_snapshot()

        restored = SnapshotDocument.from_dict(document.to_dict())

        assert restored.counts() == document.counts()
        assert restored.metadata.checksum == document.metadata.checksum
        assert restored.metadata.total_records == document.metadata.total_records


class TestComputeChecksum:
    """Tests for compute_checksum."""

    def test_independent_of_key_order(self):
        assert compute_checksum({"a": [{"x": 1, "y": 2}]}) == compute_checksum({"a": [{"y": 2, "x": 1}]})

    def test_detects_change(self):
        assert compute_checksum({"a": [{"x": 1}]}) != compute_checksum({"a": [{"x": 2}]})
