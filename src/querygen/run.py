"""Run-scoped state shared by the resolver and the declaration builder.

One GenerationRun covers every query file of one invocation. The type cache
is append-only and dies with the run; nothing is cached across runs.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, TypeVar

from querygen.casing import Caser
from querygen.catalog.types import TypeID
from querygen.errors import CatalogError, ResolutionError

if TYPE_CHECKING:
    from querygen.codegen.types import ResolvedType, ScalarType

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GenerationRun:
    """Context object for one generation run.

    Holds the OID -> ResolvedType cache, the registry of generated names,
    the casing rules, type overrides and the catalog call timeout. The lock
    makes the resolver the single writer of the cache when several
    connections describe queries concurrently.
    """

    def __init__(
        self,
        caser: Caser | None = None,
        type_overrides: dict[str, ScalarType] | None = None,
        timeout: float | None = 30.0,
    ) -> None:
        self.caser = caser or Caser()
        self.type_overrides = dict(type_overrides or {})
        self.timeout = timeout
        self.lock = asyncio.Lock()
        self._types: dict[TypeID, ResolvedType] = {}
        self._names: dict[str, tuple[TypeID, str]] = {}

    @property
    def types(self) -> dict[TypeID, ResolvedType]:
        """Read-only view of the cache (a copy)."""
        return dict(self._types)

    def cached(self, oid: TypeID) -> ResolvedType | None:
        return self._types.get(oid)

    def remember(self, oid: TypeID, typ: ResolvedType) -> ResolvedType:
        """Cache typ for oid. An existing entry is never replaced."""
        existing = self._types.get(oid)
        if existing is not None:
            return existing
        self._types[oid] = typ
        return typ

    def override_for(self, *pg_names: str) -> ScalarType | None:
        for name in pg_names:
            override = self.type_overrides.get(name)
            if override is not None:
                return override
        return None

    def claim_name(self, name: str, oid: TypeID, pg_name: str) -> str:
        """Reserve a generated declaration name for one type OID.

        Raises:
            ResolutionError: If another type already generates the same name
        """
        if not name:
            raise ResolutionError(f"type {pg_name} does not produce a usable Python name")
        holder = self._names.get(name)
        if holder is not None and holder[0] != oid:
            raise ResolutionError(
                f"types {holder[1]} and {pg_name} both generate the Python name {name}"
            )
        self._names[name] = (oid, pg_name)
        return name

    async def call(self, awaitable: Awaitable[T], what: str) -> T:
        """Await one catalog call, bounded by the run timeout.

        Raises:
            CatalogError: If the call does not finish in time
        """
        if self.timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"{what}: timed out after {self.timeout}s")
            raise CatalogError(f"{what}: timed out after {self.timeout}s") from e
