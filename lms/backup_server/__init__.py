"""
LMS Backup Server - Snapshot, retention and restore for the LMS database.

This package protects the Learning Management System database with:
- A scheduled full export, gzip-compressed and uploaded to S3
- Retention-based cleanup of old archives
- Status and listing endpoints for monitoring
- An operator restore tool that wipes and reinserts every table

Architecture:
    ┌───────────┐     ┌──────────┐     ┌─────────┐     ┌────────┐
    │ Scheduler │────▶│ HTTP API │────▶│ Exporter│────▶│ Codec  │
    └───────────┘     └──────────┘     └─────────┘     └───┬────┘
                                                           │
                                                           ▼
                      ┌──────────┐     ┌─────────┐     ┌────────┐
                      │ Restore  │◀────│  Codec  │◀────│   S3   │
                      │  Engine  │     └─────────┘     └───┬────┘
                      └──────────┘                         │
                                                           ▼
                                                     ┌──────────┐
                                                     │ Retention│
                                                     │  Sweeper │
                                                     └──────────┘

Invariants:
    - Tables are exported and reinserted in foreign-key order
    - Tables are wiped in the exact reverse of that order
    - An archive is uploaded only after export and compression succeed
    - Archive keys are date-partitioned and sortable

How to change safely:
    - Add new tables to the registry (or let introspection find them)
    - Add metadata fields, never rename the existing ones
    - Test restore with old archives before format changes

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
