from datetime import date
from decimal import Decimal

import pytest

from report_assistant.core.errors import QueryExecutionError
from report_assistant.services.sql_execution_service import (
    QueryExecutor,
    _normalize_value,
    ensure_read_only,
    execute_query,
)


def test_rows_come_back_in_database_order(db):
    result = execute_query(db, "SELECT project_name FROM projects ORDER BY id")
    assert result.row_count == 3
    assert result.truncated is False
    assert [r["project_name"] for r in result.rows] == ["Smith Kitchen", "Oak Street", "Elm Bath"]


def test_row_limit_truncates(db):
    result = QueryExecutor(row_limit=2)(db, "SELECT id FROM projects ORDER BY id")
    assert result.row_count == 2
    assert result.truncated is True
    assert [r["id"] for r in result.rows] == [1, 2]


def test_zero_rows_is_success(db):
    result = execute_query(db, "SELECT id FROM projects WHERE id > 100")
    assert result.row_count == 0
    assert result.rows == []


def test_trailing_semicolon_is_allowed(db):
    result = execute_query(db, "SELECT COUNT(*) AS n FROM payees;")
    assert result.rows == [{"n": 2}]


def test_backend_error_message_is_kept(db):
    with pytest.raises(QueryExecutionError) as excinfo:
        execute_query(db, "SELECT * FROM project_financials")
    assert "no such table" in excinfo.value.message


def test_failed_query_leaves_session_usable(db):
    with pytest.raises(QueryExecutionError):
        execute_query(db, "SELECT nope FROM projects")
    assert execute_query(db, "SELECT COUNT(*) AS n FROM projects").rows == [{"n": 3}]


@pytest.mark.parametrize(
    "sql",
    [
        "DELETE FROM payees",
        "UPDATE projects SET project_name = 'x'",
        "SELECT 1; DROP TABLE payees",
        "WITH x AS (SELECT 1) DELETE FROM payees",
        "   ",
    ],
)
def test_mutating_statements_are_rejected(db, sql):
    with pytest.raises(QueryExecutionError):
        execute_query(db, sql)
    assert execute_query(db, "SELECT COUNT(*) AS n FROM payees").rows == [{"n": 2}]


@pytest.mark.parametrize(
    "sql, expected",
    [
        ("SELECT payee_name FROM payees WHERE payee_name LIKE '%copy%'", []),
        ("SELECT id FROM expenses WHERE category = 'drop ceiling'", []),
        ("SELECT id FROM expenses WHERE category LIKE '%;%'", []),
        ("SELECT payee_name FROM payees WHERE payee_name = 'Acme''s; DELETE' OR id = 2", [{"payee_name": "Acme Lumber"}]),
        ('SELECT "update" FROM (SELECT 1 AS "update")', [{"update": 1}]),
    ],
)
def test_keywords_inside_quotes_are_allowed(db, sql, expected):
    assert execute_query(db, sql).rows == expected


def test_ensure_read_only_ignores_ilike_literals():
    sql = "SELECT project_name FROM projects WHERE project_name ILIKE '%copy%';"
    assert ensure_read_only(sql) == "SELECT project_name FROM projects WHERE project_name ILIKE '%copy%'"


@pytest.mark.parametrize(
    "sql",
    [
        "SELECT 'a'; DROP TABLE payees",
        "SELECT 'drop' FROM payees WHERE id IN (SELECT 1) UNION SELECT 1; DELETE FROM payees",
        "SELECT \"x;\" FROM t WHERE y = 'a' OR z IN (SELECT 1 FROM u) FOR UPDATE",
    ],
)
def test_keywords_outside_quotes_still_rejected(sql):
    with pytest.raises(QueryExecutionError):
        ensure_read_only(sql)


def test_ensure_read_only_accepts_cte():
    sql = "WITH t AS (SELECT 1 AS x) SELECT x FROM t;"
    assert ensure_read_only(sql) == "WITH t AS (SELECT 1 AS x) SELECT x FROM t"


def test_normalize_value():
    assert _normalize_value(Decimal("12.50")) == 12.5
    assert _normalize_value(date(2024, 1, 5)) == "2024-01-05"
    assert _normalize_value("x") == "x"
