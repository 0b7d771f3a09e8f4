"""Tests for the query file parser."""
import pytest

from querygen.errors import ParseError
from querygen.parser import CommandTag, ResultKind, parse_queries, parse_query_file


def test_parse_fixture_file(fixtures_dir):
    """Test that every block of a query file is parsed in source order."""
    qf = parse_query_file(fixtures_dir / "queries" / "users.sql")

    assert [q.name for q in qf.queries] == [
        "FindUserByID",
        "ListUsersByStatus",
        "FindUserEmail",
        "SuspendUser",
        "DeleteUsersNamed",
    ]
    assert [q.result_kind for q in qf.queries] == [
        ResultKind.ONE,
        ResultKind.MANY,
        ResultKind.OPT,
        ResultKind.EXEC,
        ResultKind.EXEC_ROWS,
    ]
    assert [q.command for q in qf.queries] == [
        CommandTag.SELECT,
        CommandTag.SELECT,
        CommandTag.SELECT,
        CommandTag.UPDATE,
        CommandTag.DELETE,
    ]
    assert qf.path.endswith("users.sql")


def test_placeholder_rewrite():
    queries = parse_queries(
        "-- name: FindUserByID :one\n"
        "SELECT id, status FROM users WHERE id = pggen.arg('ID');\n"
    )

    q = queries[0]
    assert q.prepared_sql == "SELECT id, status FROM users WHERE id = $1;"
    assert q.raw_sql == "SELECT id, status FROM users WHERE id = pggen.arg('ID');"
    assert q.param_names == ["ID"]
    assert q.params[0].position == 1
    assert q.line == 1


def test_repeated_name_reuses_position():
    """Test that the same parameter name maps to the same $n."""
    q = parse_queries(
        "-- name: Pair :many\n"
        "SELECT * FROM t WHERE a = pggen.arg('A') OR b = pggen.arg('B') OR c = pggen.arg('A');\n"
    )[0]

    assert q.prepared_sql == "SELECT * FROM t WHERE a = $1 OR b = $2 OR c = $1;"
    assert [(p.name, p.position) for p in q.params] == [("A", 1), ("B", 2)]


def test_defaults_are_kept_as_sql_literals():
    q = parse_queries(
        "-- name: Search :many\n"
        "SELECT * FROM t WHERE name = pggen.arg('Name', 'o''brien') "
        "LIMIT pggen.arg('Limit', 10) OFFSET pggen.arg('Offset');\n"
    )[0]

    assert [p.default for p in q.params] == ["'o''brien'", "10", None]
    assert q.prepared_sql.endswith("LIMIT $2 OFFSET $3;")


def test_conflicting_defaults_rejected():
    with pytest.raises(ParseError) as exc:
        parse_queries(
            "-- name: Bad :many\n"
            "SELECT * FROM t WHERE a = pggen.arg('A', 1) OR b = pggen.arg('A', 2);\n"
        )
    assert "conflicting defaults" in str(exc.value)
    assert exc.value.query_name == "Bad"


def test_placeholders_in_literals_and_comments_are_ignored():
    """Test that pggen.arg inside strings, quoted names and comments is left alone."""
    q = parse_queries(
        "-- name: Literal :one\n"
        "SELECT 'pggen.arg(''X'')' AS \"pggen.arg('Y')\", $tag$ pggen.arg('Z'); $tag$,\n"
        "  /* pggen.arg('W') */ pggen.arg('Real');\n"
    )[0]

    assert q.param_names == ["Real"]
    assert "'pggen.arg(''X'')'" in q.prepared_sql
    assert q.prepared_sql.endswith("$1;")


def test_doc_comments_attach_to_next_query():
    queries = parse_queries(
        "-- File header, not attached.\n"
        "\n"
        "-- FindUser returns one user.\n"
        "-- Second line.\n"
        "-- name: FindUser :one\n"
        "SELECT 1;\n"
        "\n"
        "-- name: NoDoc :one\n"
        "SELECT 2;\n"
    )

    assert queries[0].doc == ("FindUser returns one user.", "Second line.")
    assert queries[1].doc == ()


@pytest.mark.parametrize("content", [
    "-- File header.\n   \n-- name: FindUser :one\nSELECT 1;\n",
    "-- File header.\n\t\n-- name: FindUser :one\nSELECT 1;\n",
    "-- File header.\r\n\r\n-- name: FindUser :one\r\nSELECT 1;\r\n",
])
def test_whitespace_line_detaches_doc_comments(content):
    assert parse_queries(content)[0].doc == ()


def test_with_clause_command_detection():
    q = parse_queries(
        "-- name: Archive :exec\n"
        "WITH old AS (SELECT id FROM t WHERE created < now())\n"
        "INSERT INTO archive SELECT id FROM old;\n"
    )[0]

    assert q.command == CommandTag.INSERT


def test_header_is_case_insensitive_about_tag():
    q = parse_queries("-- name: Count :ONE\nSELECT count(*) FROM t;\n")[0]
    assert q.result_kind == ResultKind.ONE


@pytest.mark.parametrize("content, message", [
    ("-- name: Foo\nSELECT 1;\n", "missing result tag"),
    ("-- name: Foo :some\nSELECT 1;\n", "unknown result tag ':some'"),
    ("-- name: 1Foo :one\nSELECT 1;\n", "invalid query name"),
    ("SELECT 1;\n", "not preceded by"),
    ("-- name: Foo :one\n", "has no SQL statement"),
    ("-- name: Foo :one\n-- name: Bar :one\nSELECT 1;\n", "query Foo has no SQL statement"),
    ("-- name: Foo :one\nSELECT 1\n-- name: Bar :one\nSELECT 2;\n", "missing its terminating ';'"),
    ("-- name: Foo :one\n;\n", "empty statement"),
    ("-- name: Foo :exec\nCREATE TABLE t (id int);\n", "unsupported statement CREATE"),
    ("-- name: Foo :one\nSELECT pggen.sqlc('A');\n", "unknown function pggen.sqlc"),
    ("-- name: Foo :one\nSELECT pggen.arg(A);\n", "quoted parameter name"),
    ("-- name: Foo :one\nSELECT pggen.arg('A' 'B');\n", "expected ')'"),
    ("-- name: Foo :one\nSELECT pggen.arg('A', now());\n", "invalid default value"),
    ("-- name: Foo :one\nSELECT 'abc;\n", "unterminated string literal"),
])
def test_malformed_input(content, message):
    with pytest.raises(ParseError) as exc:
        parse_queries(content, "bad.sql")
    assert message in str(exc.value)
    assert str(exc.value).startswith("bad.sql:")


def test_duplicate_query_name():
    with pytest.raises(ParseError) as exc:
        parse_queries(
            "-- name: Foo :one\nSELECT 1;\n\n"
            "-- name: Foo :one\nSELECT 2;\n",
            "dup.sql",
        )
    assert "duplicate query name Foo, first declared on line 1" in str(exc.value)
    assert exc.value.line == 5


def test_error_reports_line_number():
    with pytest.raises(ParseError) as exc:
        parse_queries(
            "-- name: Ok :one\nSELECT 1;\n\n"
            "-- name: Bad :nope\nSELECT 2;\n",
            "lines.sql",
        )
    assert exc.value.line == 4
    assert str(exc.value).startswith("lines.sql:4 (query Bad):")


def test_missing_file(tmp_path):
    with pytest.raises(ParseError) as exc:
        parse_query_file(tmp_path / "missing.sql")
    assert "read query file" in str(exc.value)
