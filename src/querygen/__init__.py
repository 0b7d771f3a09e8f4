"""querygen: generate typed async Python accessors from annotated SQL.

Queries are prepared against a live Postgres database; parameter and column
types come from Postgres itself, and user-defined enums, composites and
arrays become Python declarations.
"""
from __future__ import annotations

from querygen.config import GenerateConfig, load_config
from querygen.emit import emit_all, render_all
from querygen.errors import (
    CatalogError,
    ParseError,
    QueryGenError,
    ResolutionError,
    TypingMismatchError,
)
from querygen.generate import GenerationResult, TypedQueryFile, generate, generate_with_catalogs

__all__ = [
    "CatalogError",
    "GenerateConfig",
    "GenerationResult",
    "ParseError",
    "QueryGenError",
    "ResolutionError",
    "TypedQueryFile",
    "TypingMismatchError",
    "emit_all",
    "generate",
    "generate_with_catalogs",
    "load_config",
    "render_all",
]
