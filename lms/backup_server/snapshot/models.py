"""
Snapshot document types.

A SnapshotDocument is what one export run produces and one restore run
consumes. It serialises with the archive's camelCase metadata keys so that
archives written by earlier releases keep loading.

Invariants:
    - total_records == sum of the per-table counts
    - Every table key in data is a registered top-level table at export time
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List

from ..db.base import Row


def format_timestamp(value: datetime) -> str:
    """ISO-8601 UTC with milliseconds and a Z suffix."""
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Inverse of format_timestamp (also accepts offsets)."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class TableCount:
    """Rows exported for one table."""

    name: str
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "count": self.count}


@dataclass
class SnapshotMetadata:
    """Header of a snapshot document.

    Attributes:
        format_version: Archive format version
        created_at: When the export finished
        environment: Environment label of the exporting process
        tables: Per-table row counts, in export order
        total_records: Sum of the per-table counts
        checksum: Hash of the canonical serialisation of the data
    """

    format_version: str
    created_at: datetime
    environment: str
    tables: List[TableCount] = field(default_factory=list)
    total_records: int = 0
    checksum: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.format_version,
            "createdAt": format_timestamp(self.created_at),
            "environment": self.environment,
            "tables": [t.to_dict() for t in self.tables],
            "totalRecords": self.total_records,
            "checksum": self.checksum,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SnapshotMetadata:
        """Create from dictionary; missing fields take empty defaults."""
        created_at = data.get("createdAt")
        tables = [
            TableCount(name=str(t["name"]), count=int(t["count"]))
            for t in data.get("tables") or []
        ]
        return cls(
            format_version=str(data.get("version", "")),
            created_at=parse_timestamp(created_at) if created_at else datetime.fromtimestamp(0, timezone.utc),
            environment=str(data.get("environment", "")),
            tables=tables,
            total_records=int(data.get("totalRecords", sum(t.count for t in tables))),
            checksum=str(data.get("checksum", "")),
        )


@dataclass
class SnapshotDocument:
    """A full export: metadata plus every table's rows."""

    metadata: SnapshotMetadata
    data: Dict[str, List[Row]]

    def to_dict(self) -> Dict[str, Any]:
        return {"metadata": self.metadata.to_dict(), "data": self.data}

    @classmethod
    def from_dict(cls, document: Dict[str, Any]) -> SnapshotDocument:
        return cls(
            metadata=SnapshotMetadata.from_dict(document["metadata"]),
            data=document["data"],
        )

    def counts(self) -> Dict[str, int]:
        return {name: len(rows) for name, rows in self.data.items()}
