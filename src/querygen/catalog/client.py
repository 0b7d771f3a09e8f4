"""Catalog client: the live-schema operations the code generator needs.

The generator only depends on the ``CatalogClient`` protocol. The asyncpg
implementation prepares statements (never executes them) and reads
pg_catalog for enum labels and composite fields.
"""
from __future__ import annotations

import logging
from typing import Protocol

import asyncpg

from querygen.errors import CatalogError
from . import queries
from .nullability import output_sources
from .types import (
    Description,
    Nullability,
    OutputDescriptor,
    ParamDescriptor,
    PgTypeInfo,
    PgTypeKind,
    TypeID,
)

logger = logging.getLogger(__name__)

# Errors that mean the database rejected or could not answer a request.
DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)

_TYPTYPE_KINDS = {
    "b": PgTypeKind.BASE,
    "e": PgTypeKind.ENUM,
    "c": PgTypeKind.COMPOSITE,
    "d": PgTypeKind.DOMAIN,
    "r": PgTypeKind.RANGE,
    "m": PgTypeKind.MULTIRANGE,
    "p": PgTypeKind.PSEUDO,
}


class CatalogClient(Protocol):
    """Operations the generator needs from the database."""

    async def describe(self, sql: str) -> Description:
        """Prepare ``sql`` and report parameter types and output columns."""
        ...

    async def lookup_type(self, oid: TypeID) -> PgTypeInfo:
        """Report the name and structural kind of a type."""
        ...

    async def lookup_enum_labels(self, oid: TypeID) -> list[str]:
        """Labels of an enum type in sort order."""
        ...

    async def lookup_composite_fields(self, oid: TypeID) -> list[tuple[str, TypeID]]:
        """(field name, field type) pairs of a composite type in column order."""
        ...


class AsyncpgCatalog:
    """CatalogClient over a single asyncpg connection.

    Describe calls are not safe to interleave on one connection; use one
    AsyncpgCatalog per connection when working concurrently.
    """

    def __init__(self, conn: asyncpg.Connection) -> None:
        self._conn = conn
        self._not_null: dict[str, frozenset[str]] = {}

    async def describe(self, sql: str) -> Description:
        try:
            stmt = await self._conn.prepare(sql)
        except DB_ERRORS as e:
            raise CatalogError(f"describe statement: {e}") from e

        params = [
            ParamDescriptor(position=i + 1, type_id=t.oid)
            for i, t in enumerate(stmt.get_parameters())
        ]
        attributes = stmt.get_attributes()
        nullability = await self._column_nullability(sql, len(attributes))
        columns = [
            OutputDescriptor(position=i, name=attr.name, type_id=attr.type.oid, nullability=nullability[i])
            for i, attr in enumerate(attributes)
        ]
        return Description(params=params, columns=columns)

    async def lookup_type(self, oid: TypeID) -> PgTypeInfo:
        try:
            row = await self._conn.fetchrow(queries.TYPE_INFO, oid)
        except DB_ERRORS as e:
            raise CatalogError(f"lookup type oid {oid}: {e}") from e
        if row is None:
            raise CatalogError(f"lookup type oid {oid}: no such type")

        if row["category"] == "A" and row["elem_oid"]:
            kind = PgTypeKind.ARRAY
        else:
            kind = _TYPTYPE_KINDS.get(row["typtype"], PgTypeKind.BASE)

        return PgTypeInfo(
            oid=row["oid"],
            name=row["name"],
            schema=row["schema"],
            kind=kind,
            elem_oid=row["elem_oid"] if kind == PgTypeKind.ARRAY else 0,
            base_oid=row["base_oid"] if kind == PgTypeKind.DOMAIN else 0,
        )

    async def lookup_enum_labels(self, oid: TypeID) -> list[str]:
        try:
            rows = await self._conn.fetch(queries.ENUM_LABELS, oid)
        except DB_ERRORS as e:
            raise CatalogError(f"lookup enum labels for type oid {oid}: {e}") from e
        return [r["enumlabel"] for r in rows]

    async def lookup_composite_fields(self, oid: TypeID) -> list[tuple[str, TypeID]]:
        try:
            rows = await self._conn.fetch(queries.COMPOSITE_FIELDS, oid)
        except DB_ERRORS as e:
            raise CatalogError(f"lookup composite fields for type oid {oid}: {e}") from e
        return [(r["name"], r["type_oid"]) for r in rows]

    async def _column_nullability(self, sql: str, count: int) -> list[Nullability]:
        """Derive output nullability from NOT NULL constraints where possible."""
        sources = output_sources(sql, count)
        if sources is None:
            return [Nullability.UNKNOWN] * count

        result = []
        for source in sources:
            if source is None:
                result.append(Nullability.UNKNOWN)
                continue
            not_null = await self._not_null_columns(source.table)
            result.append(Nullability.NOT_NULL if source.column in not_null else Nullability.NULLABLE)
        return result

    async def _not_null_columns(self, table: str) -> frozenset[str]:
        cached = self._not_null.get(table)
        if cached is not None:
            return cached
        try:
            rows = await self._conn.fetch(queries.NOT_NULL_COLUMNS, table)
        except DB_ERRORS as e:
            raise CatalogError(f"lookup NOT NULL columns of {table}: {e}") from e
        columns = frozenset(r["attname"] for r in rows)
        logger.debug(f"{table}: {len(columns)} NOT NULL columns")
        self._not_null[table] = columns
        return columns
