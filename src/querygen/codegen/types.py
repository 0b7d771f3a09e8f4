"""Resolved types: the Python-facing form of a Postgres type.

``ResolvedType`` is a closed union of four variants. Scalars map to a fixed
Python type and are referenced inline; enums, composites and arrays of them
are named and need a declaration in the generated models module.

Declared variants compare by identity: the resolver hands out exactly one
instance per type OID in a run.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import NoReturn, Union

from querygen.catalog.types import TypeID


@dataclass(frozen=True)
class ScalarType:
    """A type with a fixed Python mapping, e.g. int4 -> int."""
    pg_name: str
    py_type: str  # annotation text, e.g. "datetime.datetime" or "list[int | None]"
    imports: tuple[str, ...] = ()  # modules the annotation needs, e.g. ("datetime",)


@dataclass(eq=False)
class EnumType:
    """A Postgres enum; labels keep the database sort order."""
    oid: TypeID
    pg_name: str
    name: str
    labels: tuple[str, ...] = ()


@dataclass(frozen=True, eq=False)
class CompositeField:
    pg_name: str
    name: str
    type: ResolvedType


@dataclass(eq=False)
class CompositeType:
    """A Postgres composite (row) type; fields keep the column order."""
    oid: TypeID
    pg_name: str
    name: str
    fields: list[CompositeField] = field(default_factory=list)


@dataclass(eq=False)
class ArrayType:
    """An array whose element is an enum or composite type."""
    oid: TypeID
    pg_name: str
    name: str
    elem: EnumType | CompositeType


ResolvedType = Union[ScalarType, EnumType, CompositeType, ArrayType]
DeclaredType = Union[EnumType, CompositeType, ArrayType]


def is_declared(typ: ResolvedType) -> bool:
    """True for variants that need a named declaration."""
    if isinstance(typ, ScalarType):
        return False
    if isinstance(typ, (EnumType, CompositeType, ArrayType)):
        return True
    unhandled(typ)


def unhandled(typ: object) -> NoReturn:
    raise TypeError(f"unhandled resolved type: {type(typ).__name__}")
