"""Tests for combining parsed queries with catalog descriptions."""
import pytest

from querygen.catalog.types import Description, Nullability, OutputDescriptor, ParamDescriptor
from querygen.codegen import ScalarType, type_query
from querygen.errors import TypingMismatchError
from querygen.parser import parse_queries

INT4 = ScalarType("int4", "int")
TEXT = ScalarType("text", "str")


def _query():
    return parse_queries(
        "-- name: FindUser :one\n"
        "SELECT id, name FROM users WHERE id = pggen.arg('ID') AND name = pggen.arg('Name', 'joe');\n"
    )[0]


def _description(params=(23, 25)):
    return Description(
        params=[ParamDescriptor(position=i + 1, type_id=oid) for i, oid in enumerate(params)],
        columns=[
            OutputDescriptor(position=0, name="id", type_id=23, nullability=Nullability.NOT_NULL),
            OutputDescriptor(position=1, name="name", type_id=25, nullability=Nullability.UNKNOWN),
        ],
    )


def test_type_query():
    typed = type_query(_query(), _description(), [INT4, TEXT], [INT4, TEXT])

    assert typed.name == "FindUser"
    assert [(i.name, i.position, i.type, i.default) for i in typed.inputs] == [
        ("ID", 1, INT4, None),
        ("Name", 2, TEXT, "'joe'"),
    ]
    assert [(o.name, o.type, o.nullable) for o in typed.outputs] == [
        ("id", INT4, False),
        ("name", TEXT, True),
    ]
    assert typed.types() == [INT4, TEXT, INT4, TEXT]


def test_parameter_count_mismatch():
    with pytest.raises(TypingMismatchError) as exc:
        type_query(_query(), _description(params=(23,)), [INT4], [INT4, TEXT])

    err = exc.value
    assert err.query_name == "FindUser"
    assert (err.expected, err.actual) == (2, 1)
    assert "query FindUser: parameter count mismatch: query declares 2, database reports 1" == str(err)


def test_column_type_count_mismatch():
    with pytest.raises(TypingMismatchError) as exc:
        type_query(_query(), _description(), [INT4, TEXT], [INT4])
    assert exc.value.what == "resolved column type"


def test_repeated_placeholder_is_one_input():
    query = parse_queries(
        "-- name: FindPair :many\n"
        "SELECT id FROM users WHERE id = pggen.arg('ID') OR parent_id = pggen.arg('ID') "
        "OR name = pggen.arg('Name');\n"
    )[0]
    description = Description(
        params=[ParamDescriptor(position=1, type_id=23), ParamDescriptor(position=2, type_id=25)],
        columns=[OutputDescriptor(position=0, name="id", type_id=23, nullability=Nullability.NOT_NULL)],
    )

    typed = type_query(query, description, [INT4, TEXT], [INT4])

    assert [(i.name, i.position, i.type) for i in typed.inputs] == [("ID", 1, INT4), ("Name", 2, TEXT)]
    assert typed.prepared_sql.count("$1") == 2
