"""Type inference: resolve Postgres types and order their declarations."""
from __future__ import annotations

from .declarations import DeclarationGraph, DeclarationKind, DeclarationNode
from .query_typing import QueryInput, QueryOutput, TypedQuery, type_query
from .resolver import TypeResolver
from .scalars import BUILTIN_SCALARS, builtin_scalar
from .types import (
    ArrayType,
    CompositeField,
    CompositeType,
    DeclaredType,
    EnumType,
    ResolvedType,
    ScalarType,
    is_declared,
)

__all__ = [
    "ArrayType",
    "BUILTIN_SCALARS",
    "CompositeField",
    "CompositeType",
    "DeclarationGraph",
    "DeclarationKind",
    "DeclarationNode",
    "DeclaredType",
    "EnumType",
    "QueryInput",
    "QueryOutput",
    "ResolvedType",
    "ScalarType",
    "TypeResolver",
    "TypedQuery",
    "builtin_scalar",
    "is_declared",
    "type_query",
]
