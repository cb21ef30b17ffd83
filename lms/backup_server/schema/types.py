"""
Table definitions for the backup registry.

A TableDef is what callers register: a table name, the tables it has
foreign keys to, and optionally the child collections it owns. A TableSpec
is what the frozen registry hands back: the same table with its dependency
rank fixed.

Invariants:
    - TableDef and TableSpec are immutable
    - A table's dependency_rank is greater than the rank of every table it references
    - A child collection's table is owned by exactly one parent
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class ChildCollection:
    """One-to-many collection inlined on each parent row at export time.

    Attributes:
        field: Name of the nested field on the parent row
        table: Table holding the child rows
        foreign_key: Column on the child row pointing at the parent
        parent_key: Column on the parent row the foreign key matches
    """

    field: str
    table: str
    foreign_key: str
    parent_key: str = "id"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "table": self.table,
            "foreign_key": self.foreign_key,
            "parent_key": self.parent_key,
        }


@dataclass(frozen=True)
class TableDef:
    """A table to register with the TableRegistry.

    Attributes:
        name: Table name (also the key under which rows are archived)
        references: Tables this table has foreign keys to
        children: Child collections inlined on this table's rows
        primary_key: Primary key column
    """

    name: str
    references: Tuple[str, ...] = ()
    children: Tuple[ChildCollection, ...] = ()
    primary_key: str = "id"


@dataclass(frozen=True)
class TableSpec:
    """A registered table with its fixed position in dependency order.

    Attributes:
        name: Table name
        dependency_rank: Position in foreign-key order (0 = no dependencies)
        references: Tables this table has foreign keys to
        children: Child collections owned by this table
        owner: Parent table when this table is a child collection
        primary_key: Primary key column
    """

    name: str
    dependency_rank: int
    references: Tuple[str, ...] = ()
    children: Tuple[ChildCollection, ...] = ()
    owner: Optional[str] = None
    primary_key: str = "id"

    @property
    def is_child(self) -> bool:
        """Whether rows of this table are archived under a parent row."""
        return self.owner is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "dependency_rank": self.dependency_rank,
            "references": list(self.references),
            "children": [child.to_dict() for child in self.children],
            "owner": self.owner,
            "primary_key": self.primary_key,
        }


def table(
    name: str,
    *references: str,
    children: Tuple[ChildCollection, ...] = (),
    primary_key: str = "id",
) -> TableDef:
    """Shorthand for declaring a TableDef.

    Example:
        >>> table("lessons", "modules")
        TableDef(name='lessons', references=('modules',), ...)
    """
    return TableDef(
        name=name,
        references=tuple(references),
        children=children,
        primary_key=primary_key,
    )
