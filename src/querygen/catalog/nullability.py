"""Map output columns of a statement back to table columns.

Postgres' describe step reports a type per output column but no
nullability. When an output is a plain reference to a column of a table
that is read without an outer join (or is the target of RETURNING), the
column's NOT NULL constraint carries over to the output. Everything else
stays unknown.
"""
from __future__ import annotations

from dataclasses import dataclass

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError


@dataclass(frozen=True)
class SourceColumn:
    """A table column an output is read from."""
    table: str  # relation name as accepted by to_regclass, e.g. '"public"."users"'
    column: str


def output_sources(sql: str, column_count: int) -> list[SourceColumn | None] | None:
    """Find the source table column of each output of a statement.

    Args:
        sql: Prepared SQL text ($n placeholders)
        column_count: Number of output columns Postgres reported

    Returns:
        One entry per output column (None where the source is not a plain
        column), or None when the projections cannot be aligned with the
        reported columns at all.
    """
    try:
        tree = sqlglot.parse_one(sql.rstrip().rstrip(";"), read="postgres")
    except SqlglotError:
        return None
    if tree is None:
        return None

    cte_names = {cte.alias_or_name.lower() for cte in tree.find_all(exp.CTE)}

    if isinstance(tree, exp.Select):
        projections = tree.expressions
        safe, unsafe = _select_tables(tree, cte_names)
    elif isinstance(tree, (exp.Insert, exp.Update, exp.Delete)):
        returning = _child(tree, exp.Returning)
        if returning is None:
            return None
        projections = returning.expressions
        target = tree.this.this if isinstance(tree.this, exp.Schema) else tree.this
        safe, unsafe = {}, 0
        if isinstance(target, exp.Table) and target.name.lower() not in cte_names:
            safe[target.alias_or_name.lower()] = target
    else:
        return None

    if len(projections) != column_count:
        return None
    if any(isinstance(p, exp.Star) or (isinstance(p, exp.Column) and p.is_star) for p in projections):
        return None

    return [_source_of(p, safe, unsafe) for p in projections]


def _select_tables(select: exp.Select, cte_names: set[str]) -> tuple[dict[str, exp.Table], int]:
    """Return (tables whose columns keep their nullability, count of other sources)."""
    safe: dict[str, exp.Table] = {}
    unsafe = 0

    sources: list[tuple[exp.Expression, bool]] = []
    from_ = _child(select, exp.From)
    if from_ is not None:
        sources.append((from_.this, True))
    joins = [j for j in select.iter_expressions() if isinstance(j, exp.Join)]
    if any((j.side or "").upper() in ("RIGHT", "FULL") for j in joins):
        # The FROM side may be null-extended as well.
        return {}, len(joins) + 1
    for join in joins:
        sources.append((join.this, not (join.side or "").upper() == "LEFT"))

    for source, keeps_nulls in sources:
        if keeps_nulls and isinstance(source, exp.Table) and source.name.lower() not in cte_names:
            safe[source.alias_or_name.lower()] = source
        else:
            unsafe += 1
    return safe, unsafe


def _source_of(projection: exp.Expression, safe: dict[str, exp.Table], unsafe: int) -> SourceColumn | None:
    expr = projection.this if isinstance(projection, exp.Alias) else projection
    if not isinstance(expr, exp.Column):
        return None

    qualifier = expr.table.lower()
    if qualifier:
        table = safe.get(qualifier)
    elif len(safe) == 1 and unsafe == 0:
        table = next(iter(safe.values()))
    else:
        table = None
    if table is None:
        return None

    return SourceColumn(table=_regclass_name(table), column=_fold(expr.this))


def _child(node: exp.Expression, kind: type[exp.Expression]) -> exp.Expression | None:
    for child in node.iter_expressions():
        if isinstance(child, kind):
            return child
    return None


def _fold(ident: exp.Expression) -> str:
    """Apply Postgres identifier folding: unquoted names are lower-cased."""
    if isinstance(ident, exp.Identifier) and ident.quoted:
        return ident.name
    return ident.name.lower()


def _regclass_name(table: exp.Table) -> str:
    parts = [table.args.get("db"), table.args.get("this")]
    return ".".join('"' + _fold(p).replace('"', '""') + '"' for p in parts if p is not None)
