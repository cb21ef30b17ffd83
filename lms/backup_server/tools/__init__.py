"""
CLI tools for LMS backup administration.

This module provides command-line tools for:
- restore: Replace the database contents with a backup archive
- backup: Run the backup job once without the HTTP server

Invariants:
    - Tools work without a running server
    - Exit code 0 means success, 1 means failure or cancellation
"""

from .restore import RestoreOptions, RestoreTool

__all__ = ["RestoreOptions", "RestoreTool"]
