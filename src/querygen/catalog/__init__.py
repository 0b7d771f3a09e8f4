"""Live-schema catalog access."""
from __future__ import annotations

from .client import AsyncpgCatalog, CatalogClient
from .nullability import SourceColumn, output_sources
from .types import (
    Description,
    Nullability,
    OutputDescriptor,
    ParamDescriptor,
    PgTypeInfo,
    PgTypeKind,
    TypeID,
)

__all__ = [
    "AsyncpgCatalog",
    "CatalogClient",
    "Description",
    "Nullability",
    "OutputDescriptor",
    "ParamDescriptor",
    "PgTypeInfo",
    "PgTypeKind",
    "SourceColumn",
    "TypeID",
    "output_sources",
]
