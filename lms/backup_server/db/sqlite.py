"""
SQLite backend for the database gateway.

Each operation opens its own connection, so a long export never holds a
connection across tables. Inserts for one table run in a single
transaction: a failing row rolls back that table's batch and nothing else.

Invariants:
    - Table and column names are always quoted identifiers
    - Unique-key collisions are skipped with ON CONFLICT DO NOTHING and counted
    - NOT NULL, CHECK, foreign-key and type failures abort the table's batch
    - Nested row values (dicts, lists) are stored as JSON text

How to change safely:
    - Keep introspect_registry in step with TableRegistry semantics
    - Test restore against a database with foreign keys enforced
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from ..config import DatabaseConfig
from ..errors import DatabaseError
from ..schema.registry import TableRegistry
from ..schema.types import ChildCollection, TableDef
from .base import InsertResult, Row

logger = logging.getLogger(__name__)


def quote_identifier(name: str) -> str:
    """Quote a table or column name for SQLite."""
    return '"' + name.replace('"', '""') + '"'


def _to_sql_value(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return value


class SqliteDatabase:
    """LMS database backed by a single SQLite file.

    Example:
        >>> db = SqliteDatabase("/var/lib/lms/lms.db")
        >>> rows = await db.fetch_all("courses")
        >>> await db.insert_many("courses", rows)
        InsertResult(inserted=0, skipped=12)
    """

    def __init__(
        self,
        path: str,
        foreign_keys: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the database gateway.

        Args:
            path: SQLite database file
            foreign_keys: Enforce foreign keys on every connection
            busy_timeout_ms: SQLite busy timeout
        """
        self.path = Path(path)
        self.foreign_keys = foreign_keys
        self.busy_timeout_ms = busy_timeout_ms

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> SqliteDatabase:
        return cls(
            config.path,
            foreign_keys=config.foreign_keys,
            busy_timeout_ms=config.busy_timeout_ms,
        )

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection.

        Yields:
            SQLite connection in autocommit mode (explicit transactions)
        """
        conn = sqlite3.connect(
            str(self.path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
            conn.execute(f"PRAGMA foreign_keys = {'ON' if self.foreign_keys else 'OFF'}")
            yield conn
        finally:
            conn.close()

    def execute_script(self, script: str) -> None:
        """Run a multi-statement SQL script (schema setup, fixtures)."""
        with self._get_connection() as conn:
            conn.executescript(script)

    async def table_names(self) -> List[str]:
        """User tables in creation order."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT name FROM sqlite_master "
                "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY rowid"
            )
            return [row["name"] for row in cursor.fetchall()]

    async def fetch_all(self, table: str) -> List[Row]:
        """Read every row of a table."""
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(f"SELECT * FROM {quote_identifier(table)}")
                return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to read table '{table}': {e}", table=table, phase="export")

    async def delete_all(self, table: str) -> int:
        """Delete every row of a table."""
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(f"DELETE FROM {quote_identifier(table)}")
                return cursor.rowcount
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to clear table '{table}': {e}", table=table, phase="wipe")

    async def insert_many(self, table: str, rows: Sequence[Row]) -> InsertResult:
        """Insert rows in one transaction, skipping unique-key collisions."""
        if not rows:
            return InsertResult(inserted=0)

        inserted = 0
        with self._get_connection() as conn:
            conn.execute("BEGIN")
            try:
                for index, row in enumerate(rows):
                    columns = list(row.keys())
                    sql = (
                        f"INSERT INTO {quote_identifier(table)} "
                        f"({', '.join(quote_identifier(c) for c in columns)}) "
                        f"VALUES ({', '.join('?' for _ in columns)}) "
                        "ON CONFLICT DO NOTHING"
                    )
                    try:
                        cursor = conn.execute(sql, [_to_sql_value(row[c]) for c in columns])
                    except sqlite3.Error as e:
                        raise DatabaseError(
                            f"Failed to insert row {index + 1} of {len(rows)} into '{table}': {e}",
                            table=table,
                            phase="reinsert",
                        )
                    inserted += max(cursor.rowcount, 0)
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise

        return InsertResult(inserted=inserted, skipped=len(rows) - inserted)

    def _foreign_keys(self, conn: sqlite3.Connection, table: str) -> Tuple[str, ...]:
        cursor = conn.execute(f"PRAGMA foreign_key_list({quote_identifier(table)})")
        refs: List[str] = []
        for row in cursor.fetchall():
            if row["table"] not in refs:
                refs.append(row["table"])
        return tuple(refs)

    def _primary_key(self, conn: sqlite3.Connection, table: str) -> str:
        cursor = conn.execute(f"PRAGMA table_info({quote_identifier(table)})")
        for row in cursor.fetchall():
            if row["pk"] == 1:
                return row["name"]
        return "rowid"

    async def introspect_registry(
        self,
        children: Optional[Mapping[str, Sequence[ChildCollection]]] = None,
        exclude: Sequence[str] = (),
        order_override: Optional[Sequence[str]] = None,
    ) -> TableRegistry:
        """Build a frozen registry from the database's foreign keys.

        Args:
            children: Child collections to declare, keyed by parent table;
                collections whose table does not exist are dropped
            exclude: Tables to leave out (migration bookkeeping and the like)
            order_override: Passed to TableRegistry.freeze() for cycles

        Returns:
            Frozen TableRegistry in derived dependency order
        """
        children = children or {}
        names = [name for name in await self.table_names() if name not in exclude]
        existing = set(names)

        registry = TableRegistry()
        with self._get_connection() as conn:
            for name in names:
                owned = tuple(c for c in children.get(name, ()) if c.table in existing)
                registry.register(
                    TableDef(
                        name=name,
                        references=tuple(
                            ref for ref in self._foreign_keys(conn, name) if ref in existing
                        ),
                        children=owned,
                        primary_key=self._primary_key(conn, name),
                    )
                )

        registry.freeze(order_override)
        logger.info(
            "Introspected table registry",
            extra={"tables": len(names), "fingerprint": registry.fingerprint},
        )
        return registry
