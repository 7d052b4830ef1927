# report_assistant/services/retry_service.py

import json
import logging
from typing import Callable, Optional, Tuple

from sqlalchemy.orm import Session

from report_assistant.core.errors import LLMError, QueryExecutionError
from report_assistant.schemas.pipeline import (
    ErrorClassification,
    ExecutionResult,
    RetryOutcome,
    RetryStatus,
)
from report_assistant.services.sql_generation_service import as_text, extract_fenced_sql

logger = logging.getLogger(__name__)

RETRY_SYSTEM_PROMPT = """
You fix failed PostgreSQL queries for a construction business reporting tool.

Given a failed query, the database error and the user's original question,
either return a STRICTLY SIMPLER query or say that no retry is possible.

Simplify by:
- using fewer JOINs (prefer a single table or the reporting.project_financials view)
- replacing exact equality on names/text with ILIKE '%fragment%'
- dropping columns or filters that the error points at

Only SELECT statements. One statement.

Return ONLY JSON, no markdown:
{"canRetry": true, "simplifiedSql": "SELECT ...", "reason": "what changed"}
or
{"canRetry": false, "reason": "why no simpler query can answer this"}
"""


def build_retry_messages(question: str, failed_sql: str, error: str, classification: ErrorClassification):
    user_content = (
        f'User question: "{question}"\n\n'
        f"Failed SQL:\n{failed_sql}\n\n"
        f"Database error ({classification.category.value}): {error}\n"
        f"Hint: {classification.suggestion}"
    )
    return [
        {"role": "system", "content": RETRY_SYSTEM_PROMPT},
        {"role": "user", "content": user_content},
    ]


def parse_retry_response(raw: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Returns (simplified_sql, reason). simplified_sql is None when the model
    declined or nothing usable could be extracted.

    JSON first, then a fenced code block.
    """
    text = (raw or "").strip()
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = None

    if isinstance(parsed, dict):
        reason = as_text(parsed.get("reason"))
        if parsed.get("canRetry") is False:
            return None, reason or "Model declined to retry"
        sql = as_text(parsed.get("simplifiedSql")) or as_text(parsed.get("sql"))
        if sql:
            return sql, reason
        return None, reason or "Retry response had no simplifiedSql"

    sql = extract_fenced_sql(text)
    if sql:
        return sql, None
    return None, "Could not parse retry response"


async def attempt_simplified_retry(
    llm,
    db: Session,
    executor: Callable[[Session, str], ExecutionResult],
    question: str,
    failed_sql: str,
    error: str,
    classification: ErrorClassification,
    model: Optional[str] = None,
) -> RetryOutcome:
    """
    Exactly one simplification request and at most one re-execution.
    Any failure here is terminal for the request.
    """
    messages = build_retry_messages(question, failed_sql, error, classification)
    try:
        raw = await llm.chat(messages, model=model)
    except LLMError as exc:
        logger.warning("Retry request failed: %s", exc)
        return RetryOutcome(status=RetryStatus.FAILED, error=f"Retry request failed: {exc}")

    simplified_sql, reason = parse_retry_response(raw)
    if simplified_sql is None:
        logger.info("No retry possible: %s", reason)
        return RetryOutcome(status=RetryStatus.CANNOT_RETRY, error=reason)

    logger.info("Retrying with simplified SQL: %s", simplified_sql)
    try:
        result = executor(db, simplified_sql)
    except QueryExecutionError as exc:
        logger.warning("Simplified query failed: %s", exc.message)
        return RetryOutcome(status=RetryStatus.FAILED, simplified_sql=simplified_sql, error=exc.message)

    return RetryOutcome(status=RetryStatus.SUCCEEDED, simplified_sql=simplified_sql, result=result)
