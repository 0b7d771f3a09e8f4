"""Query file parsing: '-- name:' blocks and pggen.arg placeholders."""
from __future__ import annotations

from .ast import (
    CommandTag,
    Param,
    QueryFile,
    ResultKind,
    TemplateQuery,
)
from .parser import parse_queries, parse_query_file

__all__ = [
    "CommandTag",
    "Param",
    "QueryFile",
    "ResultKind",
    "TemplateQuery",
    "parse_queries",
    "parse_query_file",
]
