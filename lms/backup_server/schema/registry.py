"""
Table Registry for the backup pipeline.

The TableRegistry is the single authority for which tables are backed up
and in what order. It provides:
- Registration of tables with their foreign-key references
- Dependency ordering by topological sort over those references
- A manual override for cycles the sort cannot resolve
- Fingerprinting so two processes can confirm they share an order

Invariants:
    - Registry is mutable during startup, frozen before use
    - Once frozen, no new tables can be registered
    - Table names are unique
    - Every table ranks after every table it references (outside cycles)
    - Self references never block ordering

How to change safely:
    - Register all tables before calling freeze()
    - Prefer SqliteDatabase.introspect_registry() over hand-written lists
    - Only add tables to the override list when they are part of a cycle

Example:
    >>> registry = TableRegistry()
    >>> registry.register(table("courses"))
    >>> registry.register(table("modules", "courses"))
    >>> registry.freeze()
    >>> [t.name for t in registry.list_tables_in_dependency_order()]
    ['courses', 'modules']
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from typing import Dict, Iterator, List, Optional, Sequence

from .types import TableDef, TableSpec

logger = logging.getLogger(__name__)


class RegistryFrozenError(Exception):
    """Raised when attempting to modify a frozen registry."""
    pass


class RegistryNotFrozenError(Exception):
    """Raised when reading the dependency order before freeze()."""
    pass


class DuplicateTableError(Exception):
    """Raised when attempting to register a table name twice."""
    pass


class DependencyCycleError(Exception):
    """Raised when foreign keys form a cycle the override list does not resolve."""

    def __init__(self, tables: Sequence[str]) -> None:
        super().__init__(
            "Foreign-key cycle between tables "
            f"{', '.join(sorted(tables))}; add them to the order override"
        )
        self.tables = list(tables)


class TableRegistry:
    """Registry of backed-up tables and their dependency order.

    Thread-safety:
        - Registration is thread-safe (uses internal lock)
        - Lookups after freeze are lock-free
        - Freeze is atomic and irreversible

    Attributes:
        frozen: Whether the registry is frozen (immutable)
        fingerprint: SHA-256 hash of the ordered registry (computed on freeze)
    """

    def __init__(self) -> None:
        """Initialize an empty, mutable registry."""
        self._defs: Dict[str, TableDef] = {}
        self._specs: List[TableSpec] = []
        self._specs_by_name: Dict[str, TableSpec] = {}
        self._frozen = False
        self._fingerprint: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        """Whether the registry is frozen."""
        return self._frozen

    @property
    def fingerprint(self) -> Optional[str]:
        """Registry fingerprint (available after freeze)."""
        return self._fingerprint

    def register(self, table_def: TableDef) -> None:
        """Register a table.

        Args:
            table_def: The table to register

        Raises:
            RegistryFrozenError: If registry is frozen
            DuplicateTableError: If the name is already registered
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(
                    f"Cannot register table '{table_def.name}': registry is frozen"
                )
            if table_def.name in self._defs:
                raise DuplicateTableError(f"Table '{table_def.name}' already registered")

            self._defs[table_def.name] = table_def
            logger.debug(f"Registered table: {table_def.name}")

    def freeze(self, order_override: Optional[Sequence[str]] = None) -> str:
        """Freeze the registry and compute the dependency order.

        Args:
            order_override: Tables in the order to take them when a
                foreign-key cycle stops the topological sort

        Returns:
            Registry fingerprint string

        Raises:
            RegistryFrozenError: If already frozen
            DependencyCycleError: If a cycle is not covered by the override
            ValueError: If a child collection names an unregistered table
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError("Registry is already frozen")

            owners = self._resolve_owners()
            ordered = self._dependency_order(list(order_override or ()))

            self._specs = [
                TableSpec(
                    name=name,
                    dependency_rank=rank,
                    references=self._defs[name].references,
                    children=self._defs[name].children,
                    owner=owners.get(name),
                    primary_key=self._defs[name].primary_key,
                )
                for rank, name in enumerate(ordered)
            ]
            self._specs_by_name = {spec.name: spec for spec in self._specs}
            self._fingerprint = self._compute_fingerprint()
            self._frozen = True
            logger.info(
                f"Table registry frozen with {len(self._specs)} tables, "
                f"fingerprint={self._fingerprint}"
            )
            return self._fingerprint

    def _resolve_owners(self) -> Dict[str, str]:
        owners: Dict[str, str] = {}
        for table_def in self._defs.values():
            for child in table_def.children:
                if child.table not in self._defs:
                    raise ValueError(
                        f"Child collection '{table_def.name}.{child.field}' "
                        f"references unregistered table '{child.table}'"
                    )
                if child.table in owners:
                    raise ValueError(
                        f"Table '{child.table}' is owned by both "
                        f"'{owners[child.table]}' and '{table_def.name}'"
                    )
                owners[child.table] = table_def.name
        return owners

    def _dependency_order(self, override: List[str]) -> List[str]:
        """Kahn's algorithm, ties broken by registration order."""
        names = list(self._defs)
        position = {name: index for index, name in enumerate(names)}
        override_position = {name: index for index, name in enumerate(override)}

        pending: Dict[str, set] = {}
        for name in names:
            deps = set()
            for ref in self._defs[name].references:
                if ref == name:
                    continue
                if ref not in self._defs:
                    logger.warning(f"Table '{name}' references unregistered table '{ref}'")
                    continue
                deps.add(ref)
            pending[name] = deps

        ordered: List[str] = []
        while pending:
            ready = [name for name, deps in pending.items() if not deps]
            if ready:
                chosen = min(ready, key=position.__getitem__)
            else:
                blocked = [name for name in pending if name in override_position]
                if not blocked:
                    raise DependencyCycleError(list(pending))
                chosen = min(blocked, key=override_position.__getitem__)
                logger.warning(
                    f"Breaking foreign-key cycle at '{chosen}' using the order override",
                    extra={"unresolved": sorted(pending[chosen])},
                )

            ordered.append(chosen)
            del pending[chosen]
            for deps in pending.values():
                deps.discard(chosen)

        return ordered

    def _compute_fingerprint(self) -> str:
        canonical = json.dumps(
            [spec.to_dict() for spec in self._specs],
            sort_keys=True,
            separators=(",", ":"),
        )
        return f"sha256:{hashlib.sha256(canonical.encode('utf-8')).hexdigest()}"

    def _require_frozen(self) -> None:
        if not self._frozen:
            raise RegistryNotFrozenError("Call freeze() before reading the dependency order")

    def list_tables_in_dependency_order(self) -> List[TableSpec]:
        """All tables, ascending dependency rank.

        Raises:
            RegistryNotFrozenError: If the registry is not frozen
        """
        self._require_frozen()
        return list(self._specs)

    def top_level_tables(self) -> List[TableSpec]:
        """Tables archived under their own key, ascending rank."""
        self._require_frozen()
        return [spec for spec in self._specs if not spec.is_child]

    def get(self, name: str) -> Optional[TableSpec]:
        """Get a frozen table spec by name."""
        return self._specs_by_name.get(name)

    def owner_of(self, name: str) -> Optional[str]:
        """Parent table of a child collection table, if any."""
        spec = self._specs_by_name.get(name)
        return spec.owner if spec else None

    def __contains__(self, name: object) -> bool:
        return name in self._specs_by_name

    def __iter__(self) -> Iterator[TableSpec]:
        return iter(self.list_tables_in_dependency_order())

    def __len__(self) -> int:
        return len(self._defs)

    def to_dict(self) -> dict:
        """Ordered registry as a dictionary."""
        return {
            "fingerprint": self._fingerprint,
            "tables": [spec.to_dict() for spec in self._specs],
        }
