"""Declaration graph: which named types to emit, and in which order.

Every enum, composite and composite/enum array referenced by any query in a
run becomes exactly one DeclarationNode. ``ordered()`` lists each node after
all of its dependencies; ties keep first-encountered order so unchanged
input always produces the same output.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from querygen.catalog.types import TypeID
from querygen.errors import ResolutionError
from .types import (
    ArrayType,
    CompositeType,
    DeclaredType,
    EnumType,
    ResolvedType,
    ScalarType,
    is_declared,
    unhandled,
)

logger = logging.getLogger(__name__)


class DeclarationKind(str, Enum):
    ENUM = "enum"
    COMPOSITE = "composite"
    COMPOSITE_ARRAY = "composite-array"


@dataclass(frozen=True, eq=False)
class DeclarationNode:
    """One emittable type declaration."""
    key: TypeID
    kind: DeclarationKind
    type: DeclaredType
    deps: tuple[TypeID, ...] = ()

    @property
    def name(self) -> str:
        return self.type.name


_UNVISITED, _ACTIVE, _DONE = 0, 1, 2


class DeclarationGraph:
    """Index-addressed arena of declaration nodes."""

    def __init__(self) -> None:
        self._nodes: list[DeclarationNode] = []
        self._index: dict[TypeID, int] = {}

    def __len__(self) -> int:
        return len(self._nodes)

    @property
    def nodes(self) -> list[DeclarationNode]:
        """Nodes in first-encountered order."""
        return list(self._nodes)

    def add(self, typ: ResolvedType) -> None:
        """Register typ and every declared type nested in it.

        Scalars are ignored. Adding the same instance again is a no-op.

        Raises:
            ResolutionError: If typ depends on itself, or a different
                instance was already registered for the same OID
        """
        if isinstance(typ, ScalarType):
            return
        if not isinstance(typ, (EnumType, CompositeType, ArrayType)):
            unhandled(typ)

        existing = self._index.get(typ.oid)
        if existing is not None:
            if self._nodes[existing].type is not typ:
                raise ResolutionError(
                    f"conflicting declarations for oid {typ.oid}: "
                    f"{self._nodes[existing].type.pg_name} and {typ.pg_name}"
                )
            return

        children = _children(typ)
        deps = tuple(dict.fromkeys(child.oid for child in children))
        if typ.oid in deps:
            raise ResolutionError(f"type {typ.pg_name} references itself")

        self._index[typ.oid] = len(self._nodes)
        self._nodes.append(DeclarationNode(key=typ.oid, kind=_kind(typ), type=typ, deps=deps))
        for child in children:
            self.add(child)

    def add_all(self, types: Iterable[ResolvedType]) -> None:
        for typ in types:
            self.add(typ)

    def ordered(self) -> list[DeclarationNode]:
        """Return nodes so that every node follows all of its dependencies.

        Iterative depth-first traversal with unvisited/active/done marks.

        Raises:
            ResolutionError: If the dependencies form a cycle; the message
                lists the cycle
        """
        state = [_UNVISITED] * len(self._nodes)
        out: list[DeclarationNode] = []

        for root in range(len(self._nodes)):
            if state[root] != _UNVISITED:
                continue
            state[root] = _ACTIVE
            stack = [(root, iter(self._nodes[root].deps))]
            while stack:
                idx, deps = stack[-1]
                for dep_key in deps:
                    dep = self._index[dep_key]
                    if state[dep] == _ACTIVE:
                        raise ResolutionError(f"type dependency cycle: {self._cycle(stack, dep)}")
                    if state[dep] == _UNVISITED:
                        state[dep] = _ACTIVE
                        stack.append((dep, iter(self._nodes[dep].deps)))
                        break
                else:
                    stack.pop()
                    state[idx] = _DONE
                    out.append(self._nodes[idx])

        logger.debug(f"Ordered {len(out)} declarations")
        return out

    def _cycle(self, stack: list, dep: int) -> str:
        active = [idx for idx, _ in stack]
        path = active[active.index(dep):] + [dep]
        return " -> ".join(self._nodes[i].type.pg_name for i in path)


def _kind(typ: DeclaredType) -> DeclarationKind:
    if isinstance(typ, EnumType):
        return DeclarationKind.ENUM
    if isinstance(typ, CompositeType):
        return DeclarationKind.COMPOSITE
    if isinstance(typ, ArrayType):
        return DeclarationKind.COMPOSITE_ARRAY
    unhandled(typ)


def _children(typ: DeclaredType) -> list[DeclaredType]:
    """Declared types typ refers to directly, in field order."""
    if isinstance(typ, EnumType):
        return []
    if isinstance(typ, CompositeType):
        return [f.type for f in typ.fields if is_declared(f.type)]
    if isinstance(typ, ArrayType):
        return [typ.elem]
    unhandled(typ)
