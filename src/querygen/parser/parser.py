"""Query file parser.

A query file is a sequence of blocks:

    -- Optional doc comment lines.
    -- name: FindUserByID :one
    SELECT id, status FROM users WHERE id = pggen.arg('ID');

Placeholders are written as ``pggen.arg('Name')`` or
``pggen.arg('Name', <default literal>)`` and are rewritten to Postgres
positional parameters ($1, $2, ...). The parser never touches the database.
"""
from __future__ import annotations

import bisect
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from querygen.errors import ParseError
from .ast import CommandTag, Param, QueryFile, ResultKind, TemplateQuery

logger = logging.getLogger(__name__)

_HEADER_PREFIX = re.compile(r"^--\s*name\s*:", re.IGNORECASE)
_HEADER = re.compile(r"^--\s*name\s*:\s*(?P<name>\S+)(?:\s+:(?P<tag>\S+))?\s*$", re.IGNORECASE)
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_ARG_CALL = re.compile(r"pggen\s*\.\s*arg\s*\(")
_PGGEN_CALL = re.compile(r"pggen\s*\.\s*(\w+)")
_DEFAULT_LITERAL = re.compile(r"-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?|true\b|false\b|null\b", re.IGNORECASE)
_DOLLAR_TAG = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)?\$")

_VALID_TAGS = ", ".join(f":{k.value}" for k in ResultKind)


@dataclass
class _Header:
    name: str
    result_kind: ResultKind
    line: int
    doc: list[str] = field(default_factory=list)


class _Scanner:
    """Character-level helpers over one file's content.

    Knows how to skip string literals, quoted identifiers, dollar-quoted
    strings and comments so that ';' and placeholders inside them are ignored.
    """

    def __init__(self, content: str, path: str) -> None:
        self.content = content
        self.path = path
        self._line_starts = [0] + [m.end() for m in re.finditer(r"\n", content)]

    def line_of(self, index: int) -> int:
        return bisect.bisect_right(self._line_starts, index)

    def error(self, index: int, reason: str, query_name: str | None = None) -> ParseError:
        return ParseError(self.path, self.line_of(index), reason, query_name)

    def line_end(self, i: int) -> int:
        end = self.content.find("\n", i)
        return len(self.content) if end == -1 else end

    def skip_block_comment(self, i: int, query_name: str | None = None) -> int:
        """Skip a (possibly nested) /* */ comment starting at i."""
        text = self.content
        depth = 0
        j = i
        while j < len(text):
            if text.startswith("/*", j):
                depth += 1
                j += 2
            elif text.startswith("*/", j):
                depth -= 1
                j += 2
                if depth == 0:
                    return j
            else:
                j += 1
        raise self.error(i, "unterminated block comment", query_name)

    def skip_literal(self, i: int, query_name: str | None = None) -> int | None:
        """Return the index just past a literal starting at i, or None."""
        text = self.content
        ch = text[i]
        if ch == "'":
            escapes = i > 0 and text[i - 1] in "eE" and (i < 2 or not _is_ident_char(text[i - 2]))
            return self._skip_quoted(i, "'", escapes, "unterminated string literal", query_name)
        if ch == '"':
            return self._skip_quoted(i, '"', False, "unterminated quoted identifier", query_name)
        if ch == "$":
            if i > 0 and _is_ident_char(text[i - 1]):
                return None
            m = _DOLLAR_TAG.match(text, i)
            if m is None:
                return None
            end = text.find(m.group(0), m.end())
            if end == -1:
                raise self.error(i, f"unterminated dollar-quoted string {m.group(0)}", query_name)
            return end + len(m.group(0))
        return None

    def _skip_quoted(self, i: int, quote: str, escapes: bool, reason: str, query_name: str | None) -> int:
        text = self.content
        j = i + 1
        while j < len(text):
            c = text[j]
            if escapes and c == "\\":
                j += 2
                continue
            if c == quote:
                if j + 1 < len(text) and text[j + 1] == quote:
                    j += 2
                    continue
                return j + 1
            j += 1
        raise self.error(i, reason, query_name)


def _is_ident_char(c: str) -> bool:
    return c.isalnum() or c in "_$"


# ============================================================================
# Public API
# ============================================================================

def parse_query_file(path: str | Path) -> QueryFile:
    """Read and parse one query file.

    Args:
        path: Path to a .sql query file

    Returns:
        QueryFile with the queries in source order

    Raises:
        ParseError: If the file cannot be read or is malformed
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ParseError(path, 0, f"read query file: {e}") from e

    queries = parse_queries(content, str(path))
    logger.debug(f"Parsed {len(queries)} queries from {path}")
    return QueryFile(path=str(path), queries=tuple(queries))


def parse_queries(content: str, path: str = "<string>") -> list[TemplateQuery]:
    """Parse the contents of a query file.

    Args:
        content: Query file content
        path: Source path, used only in error messages

    Returns:
        List of TemplateQuery in source order

    Raises:
        ParseError: On any malformed block, placeholder or tag
    """
    scanner = _Scanner(content, path)
    queries: list[TemplateQuery] = []
    seen: dict[str, int] = {}

    for header, start, end in _split_blocks(scanner):
        if header.name in seen:
            raise scanner.error(
                start,
                f"duplicate query name {header.name}, first declared on line {seen[header.name]}",
                header.name,
            )
        seen[header.name] = header.line
        queries.append(_build_query(scanner, header, start, end))

    return queries


# ============================================================================
# Block splitting
# ============================================================================

def _parse_header(scanner: _Scanner, comment: str, index: int) -> _Header | None:
    """Parse a '-- name: Foo :tag' comment; None for any other comment."""
    if not _HEADER_PREFIX.match(comment):
        return None
    m = _HEADER.match(comment)
    if m is None:
        raise scanner.error(index, f"malformed query name comment {comment!r}, want '-- name: <Name> :<tag>'")
    name, tag = m.group("name"), m.group("tag")
    if not _IDENTIFIER.match(name):
        raise scanner.error(index, f"invalid query name {name!r}")
    if tag is None:
        raise scanner.error(index, f"missing result tag, want one of {_VALID_TAGS}", name)
    try:
        kind = ResultKind(tag.lower())
    except ValueError:
        raise scanner.error(index, f"unknown result tag ':{tag}', want one of {_VALID_TAGS}", name) from None
    return _Header(name=name, result_kind=kind, line=scanner.line_of(index))


def _blank_line_follows(text: str, newline: int) -> bool:
    """True if the line after the newline at index newline holds only whitespace."""
    end = text.find("\n", newline + 1)
    return end != -1 and not text[newline + 1:end].strip()


def _split_blocks(scanner: _Scanner) -> list[tuple[_Header, int, int]]:
    """Split content into (header, statement start, statement end) triples."""
    text = scanner.content
    blocks = []
    pending: _Header | None = None
    doc: list[str] = []
    i = 0

    while i < len(text):
        if text[i].isspace():
            if text[i] == "\n" and pending is None and _blank_line_follows(text, i):
                # A blank line detaches preceding comments from the next query.
                doc = []
            i += 1
            continue

        if text.startswith("--", i):
            end = scanner.line_end(i)
            comment = text[i:end].strip()
            header = _parse_header(scanner, comment, i)
            if header is not None:
                if pending is not None:
                    raise scanner.error(i, f"query {pending.name} has no SQL statement", pending.name)
                header.doc = doc
                pending = header
                doc = []
            elif pending is None:
                doc.append(comment[2:].strip())
            i = end
            continue

        if text.startswith("/*", i):
            i = scanner.skip_block_comment(i)
            continue

        if pending is None:
            raise scanner.error(i, "SQL statement is not preceded by a '-- name: <Name> :<tag>' comment")
        end = _statement_end(scanner, i, pending.name)
        blocks.append((pending, i, end))
        pending = None
        doc = []
        i = end

    if pending is not None:
        raise ParseError(scanner.path, pending.line, f"query {pending.name} has no SQL statement", pending.name)
    return blocks


def _statement_end(scanner: _Scanner, start: int, query_name: str) -> int:
    """Return the index just past the ';' that ends the statement at start."""
    text = scanner.content
    i = start
    while i < len(text):
        if text.startswith("--", i):
            end = scanner.line_end(i)
            if _HEADER_PREFIX.match(text[i:end].strip()):
                raise scanner.error(i, "statement is missing its terminating ';'", query_name)
            i = end
            continue
        if text.startswith("/*", i):
            i = scanner.skip_block_comment(i, query_name)
            continue
        literal_end = scanner.skip_literal(i, query_name)
        if literal_end is not None:
            i = literal_end
            continue
        if text[i] == ";":
            return i + 1
        i += 1
    return len(text)


# ============================================================================
# Placeholders
# ============================================================================

def _build_query(scanner: _Scanner, header: _Header, start: int, end: int) -> TemplateQuery:
    raw_sql = scanner.content[start:end].strip()
    if raw_sql.rstrip(";").strip() == "":
        raise scanner.error(start, "empty statement", header.name)

    prepared_sql, params = _rewrite_placeholders(scanner, start, end, header.name)
    command = _detect_command(prepared_sql)
    if command is None:
        keyword = _leading_word(prepared_sql) or "?"
        raise scanner.error(
            start,
            f"unsupported statement {keyword.upper()}, want SELECT, INSERT, UPDATE or DELETE",
            header.name,
        )

    return TemplateQuery(
        name=header.name,
        result_kind=header.result_kind,
        command=command,
        raw_sql=raw_sql,
        prepared_sql=prepared_sql,
        params=tuple(params),
        doc=tuple(header.doc),
        line=header.line,
    )


def _rewrite_placeholders(
    scanner: _Scanner,
    start: int,
    end: int,
    query_name: str
) -> tuple[str, list[Param]]:
    """Rewrite every pggen.arg(...) between start and end to $n.

    The same name always maps to the same $n; positions are assigned in
    first-occurrence order.
    """
    text = scanner.content
    out: list[str] = []
    positions: dict[str, int] = {}
    defaults: dict[str, str | None] = {}
    chunk_start = start
    i = start

    while i < end:
        if text.startswith("--", i):
            i = min(scanner.line_end(i), end)
            continue
        if text.startswith("/*", i):
            i = scanner.skip_block_comment(i, query_name)
            continue
        literal_end = scanner.skip_literal(i, query_name)
        if literal_end is not None:
            i = literal_end
            continue

        prev_ok = i == start or not (_is_ident_char(text[i - 1]) or text[i - 1] == ".")
        call = _ARG_CALL.match(text, i) if prev_ok else None
        if call is None:
            other = _PGGEN_CALL.match(text, i) if prev_ok else None
            if other is not None and other.group(1).lower() != "arg":
                raise scanner.error(i, f"unknown function pggen.{other.group(1)}, want pggen.arg", query_name)
            i += 1
            continue

        name, default, call_end = _parse_arg_call(scanner, call.end(), end, query_name)
        if name in positions:
            previous = defaults[name]
            if default is not None and previous is not None and default != previous:
                raise scanner.error(
                    i,
                    f"parameter {name} has conflicting defaults {previous} and {default}",
                    query_name,
                )
            if previous is None:
                defaults[name] = default
        else:
            positions[name] = len(positions) + 1
            defaults[name] = default

        out.append(text[chunk_start:i])
        out.append(f"${positions[name]}")
        chunk_start = call_end
        i = call_end

    out.append(text[chunk_start:end])
    params = [Param(name=n, position=p, default=defaults[n]) for n, p in positions.items()]
    return "".join(out).strip(), params


def _parse_arg_call(scanner: _Scanner, i: int, end: int, query_name: str) -> tuple[str, str | None, int]:
    """Parse the arguments of pggen.arg( starting just after the '('."""
    text = scanner.content
    i = _skip_ws(text, i, end)
    if i >= end or text[i] != "'":
        raise scanner.error(i, "pggen.arg requires a quoted parameter name as its first argument", query_name)
    name_end = scanner.skip_literal(i, query_name)
    name = text[i + 1:name_end - 1].replace("''", "'")
    if not _IDENTIFIER.match(name):
        raise scanner.error(i, f"invalid parameter name {name!r}", query_name)
    i = _skip_ws(text, name_end, end)

    default = None
    if i < end and text[i] == ",":
        i = _skip_ws(text, i + 1, end)
        if i < end and text[i] == "'":
            literal_end = scanner.skip_literal(i, query_name)
            default = text[i:literal_end]
            i = literal_end
        else:
            m = _DEFAULT_LITERAL.match(text, i)
            if m is None:
                raise scanner.error(i, f"invalid default value for parameter {name}", query_name)
            default = m.group(0)
            i = m.end()
        i = _skip_ws(text, i, end)

    if i >= end or text[i] != ")":
        raise scanner.error(i, f"expected ')' to close pggen.arg('{name}'", query_name)
    return name, default, i + 1


def _skip_ws(text: str, i: int, end: int) -> int:
    while i < end and text[i].isspace():
        i += 1
    return i


# ============================================================================
# Command detection
# ============================================================================

_COMMANDS: list[tuple[type[exp.Expression], CommandTag]] = [
    (exp.Select, CommandTag.SELECT),
    (exp.Union, CommandTag.SELECT),
    (exp.Intersect, CommandTag.SELECT),
    (exp.Except, CommandTag.SELECT),
    (exp.Values, CommandTag.SELECT),
    (exp.Insert, CommandTag.INSERT),
    (exp.Update, CommandTag.UPDATE),
    (exp.Delete, CommandTag.DELETE),
]

_KEYWORDS = {
    "select": CommandTag.SELECT,
    "values": CommandTag.SELECT,
    "table": CommandTag.SELECT,
    "insert": CommandTag.INSERT,
    "update": CommandTag.UPDATE,
    "delete": CommandTag.DELETE,
}


def _detect_command(sql: str) -> CommandTag | None:
    """Detect the statement kind with sqlglot, falling back to keywords."""
    try:
        tree = sqlglot.parse_one(sql.rstrip().rstrip(";"), read="postgres")
    except SqlglotError:
        tree = None

    if tree is not None:
        for expr_type, tag in _COMMANDS:
            if isinstance(tree, expr_type):
                return tag

    return _command_from_keywords(sql)


def _command_from_keywords(sql: str) -> CommandTag | None:
    """Find the first top-level statement keyword, skipping a WITH clause."""
    body = _strip_leading_comments(sql)
    first = _leading_word(body)
    if first is None:
        return None
    if first.lower() != "with":
        return _KEYWORDS.get(first.lower())

    depth = 0
    for m in re.finditer(r"[()]|[A-Za-z_]+", body):
        token = m.group(0)
        if token == "(":
            depth += 1
        elif token == ")":
            depth -= 1
        elif depth == 0 and token.lower() in _KEYWORDS:
            return _KEYWORDS[token.lower()]
    return None


def _strip_leading_comments(sql: str) -> str:
    return re.sub(r"^(?:\s+|--[^\n]*|/\*.*?\*/)*", "", sql, flags=re.DOTALL)


def _leading_word(sql: str) -> str | None:
    m = re.match(r"\s*([A-Za-z_]+)", _strip_leading_comments(sql))
    return m.group(1) if m else None
