"""
Archive codec for backup snapshots.

Archive format:
    s3://<bucket>/backups/<YYYY-MM-DD>/<YYYY-MM-DD>_<HH-MM-SS>_full.json.gz

Each archive is gzip-compressed UTF-8 JSON:
    {"metadata": {...}, "data": {"<table>": [...rows]}}

Invariants:
    - decompress(compress(x)) == x for any bytes
    - Compressed vs. raw input is decided by filename suffix, never sniffed
    - Keys are UTC, date-partitioned and sort chronologically
    - The canonical serialisation (sorted keys, compact) is what checksums hash

How to change safely:
    - The key layout is a contract for tooling that lists by prefix
    - Add metadata fields, never rename the existing ones
    - Test restore with old archives before format changes
"""

from __future__ import annotations

import base64
import gzip
import json
import logging
import zlib
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

from ..errors import InvalidFormatError

logger = logging.getLogger(__name__)

ARCHIVE_PREFIX = "backups/"
ARCHIVE_SUFFIX = "_full.json.gz"
CONTENT_TYPE = "application/gzip"
COMPRESSION_LEVEL = 9


def _json_default(value: Any) -> Any:
    """Serialise the non-JSON scalars database drivers hand back."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def canonical_json(value: Any) -> bytes:
    """Deterministic compact JSON used for checksums."""
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_json_default,
    ).encode("utf-8")


def compress(data: bytes) -> bytes:
    """Gzip at maximum compression."""
    return gzip.compress(data, compresslevel=COMPRESSION_LEVEL)


def decompress(data: bytes) -> bytes:
    """Inverse of compress().

    Raises:
        InvalidFormatError: If data is not a valid gzip stream
    """
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise InvalidFormatError(f"Failed to decompress archive: {e}")


def encode_document(document: Dict[str, Any]) -> bytes:
    """Serialise an archive document to compact UTF-8 JSON."""
    return json.dumps(
        document,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_json_default,
    ).encode("utf-8")


def decode_document(data: bytes, source: Optional[str] = None) -> Dict[str, Any]:
    """Parse archive JSON.

    Raises:
        InvalidFormatError: On invalid UTF-8, invalid JSON or a non-object document
    """
    try:
        document = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidFormatError(f"Failed to parse backup JSON: {e}", source=source)

    if not isinstance(document, dict):
        raise InvalidFormatError("Backup document must be a JSON object", source=source)
    return document


def is_compressed_name(name: str) -> bool:
    """Whether an archive name denotes gzip content."""
    return name.endswith(".gz")


def read_archive_bytes(data: bytes, name: str) -> Dict[str, Any]:
    """Decode archive content, decompressing by suffix convention."""
    if is_compressed_name(name):
        logger.info("Decompressing gzipped backup", extra={"source": name})
        data = decompress(data)
    return decode_document(data, source=name)


def read_archive_file(path: str | Path) -> Dict[str, Any]:
    """Load an archive from disk.

    Raises:
        InvalidFormatError: If the file cannot be read or parsed
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise InvalidFormatError(f"Failed to read backup file: {e}", source=str(path))
    return read_archive_bytes(data, path.name)


def archive_key(now: Optional[datetime] = None, prefix: str = ARCHIVE_PREFIX) -> str:
    """Build the dated object key for an archive created at `now` (UTC).

    Example:
        >>> archive_key(datetime(2026, 2, 2, 2, 0, 5, tzinfo=timezone.utc))
        'backups/2026-02-02/2026-02-02_02-00-05_full.json.gz'
    """
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    date_str = now.strftime("%Y-%m-%d")
    time_str = now.strftime("%H-%M-%S")
    return f"{prefix}{date_str}/{date_str}_{time_str}{ARCHIVE_SUFFIX}"
