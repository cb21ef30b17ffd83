"""
LMS Backup Server Test Suite.

This package contains:
- unit/: Unit tests (in-memory database and blob store, no network)
- integration/: Integration tests (temporary SQLite databases)
"""
