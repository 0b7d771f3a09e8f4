"""Resolve Postgres type OIDs into ResolvedType values.

Resolution order for one OID:

1. cached in the run -> the same instance again
2. built-in scalar (or a configured override) -> ScalarType
3. otherwise ask the catalog what the type is and recurse into enum labels,
   composite fields, array elements or a domain's base type
"""
from __future__ import annotations

import logging
from typing import Iterable

from querygen.catalog.client import CatalogClient
from querygen.catalog.types import PgTypeInfo, PgTypeKind, TypeID
from querygen.errors import ResolutionError
from querygen.run import GenerationRun
from .scalars import array_of, builtin_scalar
from .types import (
    ArrayType,
    CompositeField,
    CompositeType,
    EnumType,
    ResolvedType,
    ScalarType,
    unhandled,
)

logger = logging.getLogger(__name__)


class TypeResolver:
    """Memoizing resolver bound to one run and one catalog connection.

    Several resolvers (one per connection) may share a run; the run lock
    serializes their writes to the cache.
    """

    def __init__(self, run: GenerationRun, catalog: CatalogClient) -> None:
        self._run = run
        self._catalog = catalog

    async def resolve(self, oid: TypeID) -> ResolvedType:
        async with self._run.lock:
            return await self._resolve(oid, [])

    async def resolve_all(self, oids: Iterable[TypeID]) -> list[ResolvedType]:
        async with self._run.lock:
            return [await self._resolve(oid, []) for oid in oids]

    async def _resolve(self, oid: TypeID, stack: list[tuple[TypeID, str]]) -> ResolvedType:
        run = self._run
        cached = run.cached(oid)
        if cached is not None:
            return cached

        if any(active == oid for active, _ in stack):
            start = next(i for i, (active, _) in enumerate(stack) if active == oid)
            cycle = [name for _, name in stack[start:]] + [stack[start][1]]
            raise ResolutionError(f"type dependency cycle: {' -> '.join(cycle)}")

        builtin = builtin_scalar(oid)
        if builtin is not None:
            return run.remember(oid, run.override_for(builtin.pg_name) or builtin)

        info = await run.call(self._catalog.lookup_type(oid), f"lookup type oid {oid}")
        override = run.override_for(info.qualified_name, info.name)
        if override is not None:
            return run.remember(oid, override)

        stack.append((oid, info.qualified_name))
        try:
            typ = await self._resolve_structured(info, stack)
        finally:
            stack.pop()

        logger.debug(f"Resolved {info.qualified_name} (oid {oid}) to {type(typ).__name__}")
        return run.remember(oid, typ)

    async def _resolve_structured(self, info: PgTypeInfo, stack: list[tuple[TypeID, str]]) -> ResolvedType:
        run = self._run
        caser = run.caser

        if info.kind == PgTypeKind.ENUM:
            labels = await run.call(
                self._catalog.lookup_enum_labels(info.oid),
                f"lookup enum labels of {info.qualified_name}",
            )
            name = run.claim_name(caser.to_upper_camel(info.name), info.oid, info.qualified_name)
            return EnumType(oid=info.oid, pg_name=info.qualified_name, name=name, labels=tuple(labels))

        if info.kind == PgTypeKind.COMPOSITE:
            columns = await run.call(
                self._catalog.lookup_composite_fields(info.oid),
                f"lookup composite fields of {info.qualified_name}",
            )
            fields = []
            seen: dict[str, str] = {}
            for column, column_oid in columns:
                field_name = caser.to_snake(column) or f"field_{len(fields)}"
                if field_name in seen:
                    raise ResolutionError(
                        f"composite type {info.qualified_name}: fields {seen[field_name]} and "
                        f"{column} both generate the Python name {field_name}"
                    )
                seen[field_name] = column
                field_type = await self._resolve(column_oid, stack)
                fields.append(CompositeField(pg_name=column, name=field_name, type=field_type))
            name = run.claim_name(caser.to_upper_camel(info.name), info.oid, info.qualified_name)
            return CompositeType(oid=info.oid, pg_name=info.qualified_name, name=name, fields=fields)

        if info.kind == PgTypeKind.ARRAY:
            elem = await self._resolve(info.elem_oid, stack)
            if isinstance(elem, ScalarType):
                return array_of(elem, info.qualified_name)
            if isinstance(elem, (EnumType, CompositeType)):
                name = run.claim_name(f"{elem.name}Array", info.oid, info.qualified_name)
                return ArrayType(oid=info.oid, pg_name=info.qualified_name, name=name, elem=elem)
            if isinstance(elem, ArrayType):
                raise ResolutionError(f"array type {info.qualified_name} has an array element type {elem.pg_name}")
            unhandled(elem)

        if info.kind == PgTypeKind.DOMAIN:
            return await self._resolve(info.base_oid, stack)

        raise ResolutionError(
            f"no Python mapping for Postgres {info.kind.value} type {info.qualified_name} "
            f"(oid {info.oid}); add a type override"
        )
