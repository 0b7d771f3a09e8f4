"""Combine a parsed query with the types Postgres reported for it."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from querygen.catalog.types import Description, Nullability, TypeID
from querygen.errors import TypingMismatchError
from querygen.parser.ast import CommandTag, ResultKind, TemplateQuery
from .types import ResolvedType


@dataclass(frozen=True)
class QueryInput:
    """A query parameter. Inputs are supplied by the caller and never null."""
    name: str
    position: int
    type_id: TypeID
    type: ResolvedType
    default: str | None = None


@dataclass(frozen=True)
class QueryOutput:
    """A result column."""
    name: str
    position: int
    type_id: TypeID
    type: ResolvedType
    nullable: bool = True


@dataclass(frozen=True)
class TypedQuery:
    """A TemplateQuery enriched with the types from the database."""
    query: TemplateQuery
    inputs: tuple[QueryInput, ...] = ()
    outputs: tuple[QueryOutput, ...] = ()

    @property
    def name(self) -> str:
        return self.query.name

    @property
    def result_kind(self) -> ResultKind:
        return self.query.result_kind

    @property
    def command(self) -> CommandTag:
        return self.query.command

    @property
    def prepared_sql(self) -> str:
        return self.query.prepared_sql

    def types(self) -> list[ResolvedType]:
        """Every type the query references, inputs first."""
        return [i.type for i in self.inputs] + [o.type for o in self.outputs]


def type_query(
    query: TemplateQuery,
    description: Description,
    param_types: Sequence[ResolvedType],
    column_types: Sequence[ResolvedType],
) -> TypedQuery:
    """Zip parser parameters and catalog columns with their resolved types.

    Args:
        query: Parsed query
        description: What Postgres reported when preparing the query
        param_types: Resolved type per entry of description.params
        column_types: Resolved type per entry of description.columns

    Returns:
        TypedQuery

    Raises:
        TypingMismatchError: If any of the counts disagree
    """
    if len(query.params) != len(description.params):
        raise TypingMismatchError(query.name, "parameter", len(query.params), len(description.params))
    if len(param_types) != len(description.params):
        raise TypingMismatchError(query.name, "resolved parameter type", len(description.params), len(param_types))
    if len(column_types) != len(description.columns):
        raise TypingMismatchError(query.name, "resolved column type", len(description.columns), len(column_types))

    params = sorted(query.params, key=lambda p: p.position)
    inputs = tuple(
        QueryInput(
            name=param.name,
            position=param.position,
            type_id=desc.type_id,
            type=typ,
            default=param.default,
        )
        for param, desc, typ in zip(params, description.params, param_types)
    )
    outputs = tuple(
        QueryOutput(
            name=col.name,
            position=col.position,
            type_id=col.type_id,
            type=typ,
            nullable=col.nullability != Nullability.NOT_NULL,
        )
        for col, typ in zip(description.columns, column_types)
    )
    return TypedQuery(query=query, inputs=inputs, outputs=outputs)
