"""Tests for mapping output columns back to table columns."""
import pytest

from querygen.catalog.nullability import SourceColumn, output_sources

USERS_ID = SourceColumn('"users"', "id")
USERS_NAME = SourceColumn('"users"', "name")


@pytest.mark.parametrize("sql, count, expected", [
    ("SELECT id, name FROM users WHERE id = $1;", 2, [USERS_ID, USERS_NAME]),
    ("SELECT u.id AS user_id, u.name FROM users u", 2, [USERS_ID, USERS_NAME]),
    ("SELECT id, count(*) FROM users GROUP BY id", 2, [USERS_ID, None]),
    ("SELECT id, 'x' || name FROM users", 2, [USERS_ID, None]),
    ('SELECT "Name" FROM users', 1, [SourceColumn('"users"', "Name")]),
    ("SELECT id FROM app.users", 1, [SourceColumn('"app"."users"', "id")]),
])
def test_select_sources(sql, count, expected):
    assert output_sources(sql, count) == expected


def test_inner_join_keeps_both_sides():
    sql = "SELECT u.id, o.total FROM users u JOIN orders o ON o.user_id = u.id"
    assert output_sources(sql, 2) == [USERS_ID, SourceColumn('"orders"', "total")]


def test_left_join_side_is_unknown():
    sql = "SELECT u.id, o.total FROM users u LEFT JOIN orders o ON o.user_id = u.id"
    assert output_sources(sql, 2) == [USERS_ID, None]


def test_right_join_makes_everything_unknown():
    sql = "SELECT u.id, o.total FROM users u RIGHT JOIN orders o ON o.user_id = u.id"
    assert output_sources(sql, 2) == [None, None]


def test_unqualified_column_with_several_tables():
    sql = "SELECT id FROM users u JOIN orders o ON o.user_id = u.id"
    assert output_sources(sql, 1) == [None]


def test_cte_is_not_a_table():
    sql = "WITH recent AS (SELECT id FROM users) SELECT id FROM recent"
    assert output_sources(sql, 1) == [None]


def test_returning():
    sql = "INSERT INTO users (id, name) VALUES ($1, $2) RETURNING id, name"
    assert output_sources(sql, 2) == [USERS_ID, USERS_NAME]

    sql = "DELETE FROM users WHERE id = $1 RETURNING id"
    assert output_sources(sql, 1) == [USERS_ID]


@pytest.mark.parametrize("sql, count", [
    ("SELECT * FROM users", 3),
    ("SELECT u.* FROM users u", 3),
    ("SELECT id FROM users", 2),
    ("UPDATE users SET name = $1", 0),
])
def test_unalignable(sql, count):
    assert output_sources(sql, count) is None
