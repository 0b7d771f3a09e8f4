"""Parsed form of a query file, before any database access."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ResultKind(str, Enum):
    """Cardinality tag from ``-- name: Foo :<tag>``."""
    ONE = "one"
    OPT = "opt"
    MANY = "many"
    EXEC = "exec"
    EXEC_ROWS = "exec-rows"

    @property
    def cardinality(self) -> str:
        return _CARDINALITY[self]

    @property
    def returns_rows(self) -> bool:
        return self in (ResultKind.ONE, ResultKind.OPT, ResultKind.MANY)


_CARDINALITY = {
    ResultKind.ONE: "exactly one row",
    ResultKind.OPT: "zero-or-one row",
    ResultKind.MANY: "many rows",
    ResultKind.EXEC: "no rows",
    ResultKind.EXEC_ROWS: "no rows, affected row count",
}


class CommandTag(str, Enum):
    """Statement kind, as Postgres reports in the command tag."""
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Param:
    """A named placeholder like ``pggen.arg('FirstName', 'joe')``."""
    name: str
    position: int  # 1-based, the $n used in prepared_sql
    default: str | None = None  # SQL literal text, e.g. "'joe'" or "42"


@dataclass(frozen=True)
class TemplateQuery:
    """One query block from a query file."""
    name: str
    result_kind: ResultKind
    command: CommandTag
    raw_sql: str  # placeholders still in pggen.arg(...) form
    prepared_sql: str  # placeholders rewritten to $1, $2, ...
    params: tuple[Param, ...] = ()
    doc: tuple[str, ...] = ()
    line: int = 0  # line of the "-- name:" comment

    @property
    def param_names(self) -> list[str]:
        return [p.name for p in self.params]


@dataclass(frozen=True)
class QueryFile:
    """All queries parsed from one source file, in source order."""
    path: str
    queries: tuple[TemplateQuery, ...] = field(default_factory=tuple)
