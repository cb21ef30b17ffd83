"""
Archive module for the backup pipeline.

This module turns snapshot documents into archive bytes and back:
- gzip compression at maximum level
- compact UTF-8 JSON encoding
- dated object keys

Invariants:
    - Archives are immutable once written
    - Archive format is self-describing for restore
"""

from .codec import (
    ARCHIVE_PREFIX,
    ARCHIVE_SUFFIX,
    CONTENT_TYPE,
    archive_key,
    canonical_json,
    compress,
    decode_document,
    decompress,
    encode_document,
    read_archive_bytes,
    read_archive_file,
)

__all__ = [
    "ARCHIVE_PREFIX",
    "ARCHIVE_SUFFIX",
    "CONTENT_TYPE",
    "archive_key",
    "canonical_json",
    "compress",
    "decompress",
    "encode_document",
    "decode_document",
    "read_archive_bytes",
    "read_archive_file",
]
