"""
Snapshot module for the backup pipeline.

This module handles full-database exports:
- Reading every registered table in dependency order
- Inlining owned child collections on their parent rows
- Stamping metadata with counts and a checksum

Invariants:
    - A document is built fresh on every run and never cached
    - Only complete documents are returned
"""

from .exporter import FORMAT_VERSION, SnapshotExporter, compute_checksum
from .models import (
    SnapshotDocument,
    SnapshotMetadata,
    TableCount,
    format_timestamp,
    parse_timestamp,
)

__all__ = [
    "FORMAT_VERSION",
    "SnapshotExporter",
    "compute_checksum",
    "SnapshotDocument",
    "SnapshotMetadata",
    "TableCount",
    "format_timestamp",
    "parse_timestamp",
]
