"""
Database gateway for the backup pipeline.

Export and restore reach the LMS database only through three calls:
read a whole table, delete a whole table, bulk-insert rows.

Invariants:
    - Every failure surfaces as DatabaseError with table and phase
    - Bulk inserts skip unique-key collisions and report them
"""

from .base import Database, InsertResult, Row
from .memory import InMemoryDatabase
from .sqlite import SqliteDatabase, quote_identifier

__all__ = [
    "Database",
    "InMemoryDatabase",
    "InsertResult",
    "Row",
    "SqliteDatabase",
    "quote_identifier",
]
