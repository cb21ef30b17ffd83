"""
Base protocol and types for the database gateway.

The backup pipeline never builds queries itself. It reads, deletes and
inserts whole tables through this narrow interface, so the exporter and
restore engine can be tested against a recording double and pointed at
any relational backend.

Invariants:
    - fetch_all returns every row of a table, no pagination
    - delete_all removes every row of a table and returns the count
    - insert_many skips rows that collide on unique constraints and
      reports them, but raises for any other failure

How to change safely:
    - Protocol changes require updating all implementations
    - Keep insert_many duplicate-tolerant: restore relies on it
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Protocol, Sequence, runtime_checkable

Row = Dict[str, Any]


@dataclass(frozen=True)
class InsertResult:
    """Outcome of a duplicate-tolerant bulk insert.

    Attributes:
        inserted: Rows written
        skipped: Rows that collided with an existing unique key
    """

    inserted: int
    skipped: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.skipped


@runtime_checkable
class Database(Protocol):
    """Protocol for database backends used by export and restore."""

    @abstractmethod
    async def fetch_all(self, table: str) -> List[Row]:
        """Read every row of a table.

        Raises:
            DatabaseError: If the table cannot be read
        """
        ...

    @abstractmethod
    async def delete_all(self, table: str) -> int:
        """Delete every row of a table.

        Returns:
            Number of rows deleted

        Raises:
            DatabaseError: If the delete fails (e.g. table does not exist)
        """
        ...

    @abstractmethod
    async def insert_many(self, table: str, rows: Sequence[Row]) -> InsertResult:
        """Insert rows, skipping unique-key collisions.

        Raises:
            DatabaseError: If any row fails for a reason other than a collision
        """
        ...
