"""Error taxonomy for a generation run.

Every error is fatal for the run. Nothing is retried: the same schema and
the same query files always reproduce the same failure.
"""
from __future__ import annotations

from pathlib import Path


class QueryGenError(Exception):
    """Base class for all querygen errors."""


class ParseError(QueryGenError):
    """Malformed query block, placeholder or cardinality tag."""

    def __init__(self, path: str | Path, line: int, reason: str, query_name: str | None = None):
        self.path = str(path)
        self.line = line
        self.reason = reason
        self.query_name = query_name
        where = f"{self.path}:{line}"
        if query_name:
            where += f" (query {query_name})"
        super().__init__(f"{where}: {reason}")


class CatalogError(QueryGenError):
    """Describing a statement or looking up a type in the live database failed.

    The underlying asyncpg/Postgres error is chained as ``__cause__``.
    """

    def __init__(self, message: str, query_name: str | None = None):
        self.message = message
        self.query_name = query_name
        if query_name:
            super().__init__(f"query {query_name}: {message}")
        else:
            super().__init__(message)

    def for_query(self, query_name: str) -> CatalogError:
        """Return a copy of this error attributed to ``query_name``."""
        if self.query_name:
            return self
        err = CatalogError(self.message, query_name=query_name)
        err.__cause__ = self.__cause__
        return err


class ResolutionError(QueryGenError):
    """A database type could not be turned into a declared target type.

    Raised for generated-name collisions, dependency cycles, conflicting
    declarations for one type and types with no mapping.
    """


class TypingMismatchError(QueryGenError):
    """Parser and catalog disagree on the number of parameters or columns."""

    def __init__(self, query_name: str, what: str, expected: int, actual: int):
        self.query_name = query_name
        self.what = what
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"query {query_name}: {what} count mismatch: "
            f"query declares {expected}, database reports {actual}"
        )
