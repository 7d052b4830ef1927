import json

import pytest

from report_assistant.schemas.pipeline import QueryLogEntry
from report_assistant.services.query_logger import QueryLogger, detect_kpis, detect_query_intent


@pytest.mark.parametrize(
    "sql, expected",
    [
        ("SELECT SUM(hours) FROM expenses WHERE expense_date >= CURRENT_DATE - INTERVAL '7 days'", "time_based"),
        ("SELECT * FROM expenses WHERE created_at > now() - interval '1 day'", "time_based"),
        ("SELECT category, SUM(amount) FROM expenses GROUP BY category", "aggregation"),
        ("SELECT project_name FROM projects ORDER BY margin_percentage DESC", "comparison"),
        ("SELECT project_name FROM projects WHERE margin_percentage < 10", "comparison"),
        ("SELECT * FROM payees WHERE payee_name ILIKE '%john%'", "lookup"),
        ("SELECT * FROM payees", None),
        (None, None),
    ],
)
def test_detect_query_intent(sql, expected):
    assert detect_query_intent(sql) == expected


def test_detect_kpis_matches_whole_words():
    kpis = frozenset({"actual_margin", "current_margin", "total_invoiced"})
    found = detect_kpis(kpis, "SELECT current_margin, total_invoiced_x FROM p", "uses actual_margin")
    assert found == ["actual_margin", "current_margin"]


def test_detect_kpis_ignores_missing_text():
    assert detect_kpis({"actual_margin"}, None, "") == []


def test_emit_writes_camel_case_json(tmp_path):
    lines = []
    path = tmp_path / "queries.jsonl"
    query_logger = QueryLogger(sink=lines.append, path=str(path))

    query_logger.emit(
        QueryLogEntry(
            user_query="How many hours did Johnny work last week?",
            sql="SELECT 1",
            status="error",
            execution_time_ms=12,
            error="no such table: x",
            retry_attempted=False,
        )
    )

    record = json.loads(lines[0])
    assert record["userQuery"] == "How many hours did Johnny work last week?"
    assert record["executionTimeMs"] == 12
    assert record["retryAttempted"] is False
    assert record["kpisUsed"] == []
    assert "rowCount" not in record
    assert "timestamp" in record
    assert path.read_text(encoding="utf-8").splitlines() == lines


def test_default_sink_is_query_log_logger(caplog):
    caplog.set_level("INFO", logger="report_assistant.query_log")
    QueryLogger().emit(QueryLogEntry(user_query="q", status="success", row_count=1))
    assert any('"status":"success"' in r.getMessage() for r in caplog.records)
