# report_assistant/services/sql_execution_service.py

import logging
import re
from decimal import Decimal
from datetime import date, datetime

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session

from report_assistant.core.errors import QueryExecutionError
from report_assistant.schemas.pipeline import ExecutionResult

logger = logging.getLogger(__name__)

READ_ONLY_MESSAGE = "Only SELECT queries are allowed"

_FORBIDDEN_RE = re.compile(
    r"\b(insert|update|delete|drop|alter|truncate|create|grant|revoke|merge|copy|vacuum|call)\b",
    re.IGNORECASE,
)
_LEADING_RE = re.compile(r"^\s*(select|with)\b", re.IGNORECASE)
# single-quoted literals and double-quoted identifiers, with doubled-quote escapes
_QUOTED_RE = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"")


def ensure_read_only(sql: str) -> str:
    """
    Return the statement without a trailing semicolon, or raise if it is not a
    single read-only selection.
    """
    cleaned = (sql or "").strip()
    if cleaned.endswith(";"):
        cleaned = cleaned[:-1].rstrip()
    if not cleaned:
        raise QueryExecutionError("Empty SQL statement")
    scannable = _QUOTED_RE.sub("''", cleaned)
    if ";" in scannable:
        raise QueryExecutionError(f"{READ_ONLY_MESSAGE}: multiple statements are forbidden")
    if not _LEADING_RE.match(cleaned):
        raise QueryExecutionError(READ_ONLY_MESSAGE)
    forbidden = _FORBIDDEN_RE.search(scannable)
    if forbidden:
        raise QueryExecutionError(f"{READ_ONLY_MESSAGE}: '{forbidden.group(1).upper()}' is forbidden")
    return cleaned


def _normalize_value(value):
    """
    Convert DB values into JSON-serialisable types.

    - Decimal  -> float
    - date/datetime -> ISO string
    - everything else as is
    """
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def execute_query(
    db: Session,
    sql: str,
    row_limit: int = 1000,
    timeout_seconds: float = 30.0,
) -> ExecutionResult:
    """
    Run one read-only statement and return at most `row_limit` rows in
    database order. No retries here.
    """
    statement = ensure_read_only(sql)
    is_postgres = db.get_bind().dialect.name == "postgresql"

    try:
        # start a fresh transaction so the read-only setting is its first statement
        db.rollback()
        if is_postgres:
            db.execute(text("SET TRANSACTION READ ONLY"))
            db.execute(text(f"SET LOCAL statement_timeout = {int(timeout_seconds * 1000)}"))

        result = db.execute(text(statement))
        fetched = result.fetchmany(row_limit + 1)
        cols = list(result.keys())
    except DBAPIError as exc:
        message = str(exc.orig) if exc.orig is not None else str(exc)
        logger.error("Query execution error: %s", message)
        raise QueryExecutionError(message) from exc
    except SQLAlchemyError as exc:
        logger.error("Query execution error: %s", exc)
        raise QueryExecutionError(str(exc)) from exc
    finally:
        db.rollback()

    truncated = len(fetched) > row_limit
    rows = []
    for r in fetched[:row_limit]:
        rows.append({col: _normalize_value(val) for col, val in zip(cols, r)})

    logger.info("Query returned %s rows%s", len(rows), " (truncated)" if truncated else "")
    return ExecutionResult(rows=rows, row_count=len(rows), truncated=truncated)


class QueryExecutor:
    """Binds the row cap and timeout so stages only pass (db, sql)."""

    def __init__(self, row_limit: int = 1000, timeout_seconds: float = 30.0):
        self.row_limit = row_limit
        self.timeout_seconds = timeout_seconds

    def __call__(self, db: Session, sql: str) -> ExecutionResult:
        return execute_query(db, sql, row_limit=self.row_limit, timeout_seconds=self.timeout_seconds)
