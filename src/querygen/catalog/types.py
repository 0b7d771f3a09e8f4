"""Descriptors reported by the catalog for one statement or one type."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

TypeID = int  # Postgres type OID


class Nullability(str, Enum):
    NOT_NULL = "not-null"
    NULLABLE = "nullable"
    UNKNOWN = "unknown"


class PgTypeKind(str, Enum):
    """Structural family of a Postgres type (pg_type.typtype, arrays split out)."""
    BASE = "base"
    ENUM = "enum"
    COMPOSITE = "composite"
    ARRAY = "array"
    DOMAIN = "domain"
    RANGE = "range"
    MULTIRANGE = "multirange"
    PSEUDO = "pseudo"


@dataclass(frozen=True)
class OutputDescriptor:
    """One result column as described by Postgres."""
    position: int  # 0-based
    name: str
    type_id: TypeID
    nullability: Nullability = Nullability.UNKNOWN


@dataclass(frozen=True)
class ParamDescriptor:
    """One statement parameter as described by Postgres."""
    position: int  # 1-based, matches $n
    type_id: TypeID
    nullability: Nullability = Nullability.UNKNOWN


@dataclass(frozen=True)
class Description:
    """Result of describing (preparing without executing) one statement."""
    params: list[ParamDescriptor] = field(default_factory=list)
    columns: list[OutputDescriptor] = field(default_factory=list)

    @property
    def param_types(self) -> list[TypeID]:
        return [p.type_id for p in self.params]


@dataclass(frozen=True)
class PgTypeInfo:
    """Catalog entry for one type OID."""
    oid: TypeID
    name: str
    schema: str
    kind: PgTypeKind
    elem_oid: TypeID = 0  # element type for arrays
    base_oid: TypeID = 0  # base type for domains

    @property
    def qualified_name(self) -> str:
        if self.schema in ("", "pg_catalog", "public"):
            return self.name
        return f"{self.schema}.{self.name}"
