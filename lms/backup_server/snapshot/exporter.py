"""
Full-database exporter.

The SnapshotExporter reads every registered table into one in-memory
document. Tables are read one at a time in dependency order; tables that
own child collections get their children's rows inlined on each row.

Invariants:
    - Every top-level table is read, ascending dependency rank
    - Child collection tables are never archived under their own key
    - Any read failure fails the whole export; no partial document
    - The checksum covers the canonical serialisation of data only

Known limitation:
    No snapshot-isolation transaction spans the export. Tables read at
    different instants may disagree if the LMS is writing meanwhile.

How to change safely:
    - Keep the metadata keys stable (restore reads them)
    - Test export -> restore dry-run count equality after any change
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..archive.codec import canonical_json
from ..db.base import Database, Row
from ..schema.registry import TableRegistry
from ..schema.types import TableSpec
from .models import SnapshotDocument, SnapshotMetadata, TableCount

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0.0"


def compute_checksum(data: Dict[str, Any]) -> str:
    """SHA-256 of the canonical serialisation of the table data."""
    return f"sha256:{hashlib.sha256(canonical_json(data)).hexdigest()}"


class SnapshotExporter:
    """Exports every registered table into a SnapshotDocument.

    Example:
        >>> exporter = SnapshotExporter(database, registry, environment="production")
        >>> document = await exporter.export_snapshot()
        >>> document.metadata.total_records
        1234
    """

    def __init__(
        self,
        database: Database,
        registry: TableRegistry,
        environment: str = "production",
        format_version: str = FORMAT_VERSION,
    ) -> None:
        """Initialize the exporter.

        Args:
            database: Database gateway to read from
            registry: Frozen table registry
            environment: Label stamped into the metadata
            format_version: Archive format version
        """
        self.database = database
        self.registry = registry
        self.environment = environment
        self.format_version = format_version

    async def export_snapshot(self, now: Optional[datetime] = None) -> SnapshotDocument:
        """Read all tables and assemble the document.

        Raises:
            DatabaseError: If any table read fails
        """
        start_time = time.time()
        data: Dict[str, List[Row]] = {}
        counts: List[TableCount] = []

        for spec in self.registry.top_level_tables():
            logger.info(f"Exporting {spec.name} table...")
            rows = await self._read_table(spec)
            data[spec.name] = rows
            counts.append(TableCount(name=spec.name, count=len(rows)))

        total_records = sum(c.count for c in counts)
        checksum = compute_checksum(data)

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Export complete: {total_records} records from {len(counts)} tables "
            f"in {duration_ms}ms",
            extra={"checksum": checksum},
        )

        metadata = SnapshotMetadata(
            format_version=self.format_version,
            created_at=now or datetime.now(timezone.utc),
            environment=self.environment,
            tables=counts,
            total_records=total_records,
            checksum=checksum,
        )
        return SnapshotDocument(metadata=metadata, data=data)

    async def _read_table(self, spec: TableSpec) -> List[Row]:
        rows = await self.database.fetch_all(spec.name)

        for child in spec.children:
            child_rows = await self.database.fetch_all(child.table)
            by_parent: Dict[Any, List[Row]] = defaultdict(list)
            for child_row in child_rows:
                by_parent[child_row.get(child.foreign_key)].append(child_row)

            for row in rows:
                row[child.field] = by_parent.get(row.get(child.parent_key), [])

            logger.debug(
                f"Inlined {len(child_rows)} {child.table} rows on {spec.name}.{child.field}"
            )

        return rows
