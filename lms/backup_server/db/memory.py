"""
In-memory database for testing.

Provides the Database contract without SQLite, for:
- Unit tests of the exporter, restore engine and backup job
- Asserting the exact order of wipe and insert calls

Invariants:
    - All data is lost on process exit
    - A batch is all-or-nothing, as one SQLite transaction is
    - Rows colliding on the primary key are skipped, not raised

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with Database protocol
"""

from __future__ import annotations

import copy
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

from ..errors import DatabaseError
from .base import InsertResult, Row


class InMemoryDatabase:
    """In-memory implementation of Database.

    Attributes:
        tables: Rows per table
        calls: (operation, table) for every call, in call order
        fail_reads: Tables whose fetch_all raises
        fail_deletes: Tables whose delete_all raises
        fail_insert_at: Table -> 0-based row index whose insert raises

    Example:
        >>> db = InMemoryDatabase({"courses": [{"id": 1}]})
        >>> await db.insert_many("courses", [{"id": 1}, {"id": 2}])
        InsertResult(inserted=1, skipped=1)
    """

    def __init__(
        self,
        tables: Optional[Mapping[str, Sequence[Row]]] = None,
        primary_keys: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.tables: Dict[str, List[Row]] = {
            name: [dict(row) for row in rows] for name, rows in (tables or {}).items()
        }
        self.primary_keys: Dict[str, str] = dict(primary_keys or {})
        self.calls: List[Tuple[str, str]] = []
        self.fail_reads: Set[str] = set()
        self.fail_deletes: Set[str] = set()
        self.fail_insert_at: Dict[str, int] = {}

    def calls_for(self, operation: str) -> List[str]:
        """Tables passed to one operation, in call order."""
        return [table for op, table in self.calls if op == operation]

    async def fetch_all(self, table: str) -> List[Row]:
        self.calls.append(("fetch", table))
        if table in self.fail_reads:
            raise DatabaseError(f"Simulated read failure on '{table}'", table=table, phase="export")
        return copy.deepcopy(self.tables.get(table, []))

    async def delete_all(self, table: str) -> int:
        self.calls.append(("delete", table))
        if table in self.fail_deletes:
            raise DatabaseError(f"Simulated delete failure on '{table}'", table=table, phase="wipe")
        deleted = len(self.tables.get(table, []))
        self.tables[table] = []
        return deleted

    async def insert_many(self, table: str, rows: Sequence[Row]) -> InsertResult:
        self.calls.append(("insert", table))
        pk = self.primary_keys.get(table, "id")
        existing = self.tables.setdefault(table, [])
        seen = {row[pk] for row in existing if pk in row}

        batch: List[Row] = []
        for index, row in enumerate(rows):
            if self.fail_insert_at.get(table) == index:
                raise DatabaseError(
                    f"Failed to insert row {index + 1} of {len(rows)} into '{table}'",
                    table=table,
                    phase="reinsert",
                )
            if pk in row:
                if row[pk] in seen:
                    continue
                seen.add(row[pk])
            batch.append(dict(row))

        existing.extend(batch)
        return InsertResult(inserted=len(batch), skipped=len(rows) - len(batch))
