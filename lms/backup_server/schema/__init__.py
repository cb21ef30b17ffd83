"""
Schema module for the backup pipeline.

This module decides which tables are backed up and in what order:
- Table definitions (TableDef, TableSpec, ChildCollection)
- The TableRegistry and its foreign-key dependency ordering
- The built-in LMS table declarations and the legacy archive upgrade

Invariants:
    - The registry is frozen before any export or restore
    - Dependents always rank after the tables they reference
    - Restore wipes in reverse rank order and inserts in forward rank order
"""

from .lms import (
    LEGACY_TABLE_KEYS,
    LMS_EXCLUDED_TABLES,
    LMS_TABLES,
    USER_CHILDREN,
    build_lms_registry,
    load_lms_registry,
    upgrade_legacy_document,
)
from .registry import (
    DependencyCycleError,
    DuplicateTableError,
    RegistryFrozenError,
    RegistryNotFrozenError,
    TableRegistry,
)
from .types import ChildCollection, TableDef, TableSpec, table

__all__ = [
    # Types
    "ChildCollection",
    "TableDef",
    "TableSpec",
    "table",
    # Registry
    "TableRegistry",
    "RegistryFrozenError",
    "RegistryNotFrozenError",
    "DuplicateTableError",
    "DependencyCycleError",
    # LMS
    "LMS_TABLES",
    "USER_CHILDREN",
    "LEGACY_TABLE_KEYS",
    "LMS_EXCLUDED_TABLES",
    "build_lms_registry",
    "load_lms_registry",
    "upgrade_legacy_document",
]
