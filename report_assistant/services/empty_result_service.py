# report_assistant/services/empty_result_service.py

import json
import logging
from typing import Optional

from report_assistant.core.errors import LLMError
from report_assistant.schemas.pipeline import EmptyResultAnalysis
from report_assistant.services.sql_generation_service import SQL_FENCE_RE, as_text

logger = logging.getLogger(__name__)

DEFAULT_SUGGESTIONS = [
    "Check the spelling of names, or use just part of the name",
    "Try a wider date range",
    "Remove a filter (status, category, project) and ask again",
]

EMPTY_RESULT_SYSTEM_PROMPT = """
You diagnose database queries that ran successfully but returned no rows,
for a construction project management reporting tool.

Common causes: a person or project name spelled differently in the data
(nicknames, partial names), a date range that is too narrow, a status or
category filter that excludes everything, or data that has not been entered.

Return ONLY JSON:
{
  "reason": "<one sentence, most likely cause>",
  "suggestions": ["<short suggestion>", "..."],
  "alternativeQuestion": "<one question that will return data>"
}
"""


def _parse(raw: str) -> Optional[dict]:
    text = (raw or "").strip()
    match = SQL_FENCE_RE.search(text)
    if match:
        text = match.group(1).strip()
        if text.lower().startswith("json"):
            text = text[4:].strip()
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


async def analyze_empty_result(llm, question: str, sql: str, model: Optional[str] = None) -> EmptyResultAnalysis:
    """
    Ask the model why a query returned nothing. Never raises: any failure
    folds into the fixed suggestion list.
    """
    fallback = EmptyResultAnalysis(suggestions=list(DEFAULT_SUGGESTIONS))

    messages = [
        {"role": "system", "content": EMPTY_RESULT_SYSTEM_PROMPT},
        {"role": "user", "content": f'User question: "{question}"\n\nExecuted SQL:\n{sql}'},
    ]
    try:
        raw = await llm.chat(messages, model=model)
    except LLMError as exc:
        logger.warning("Empty-result analysis failed: %s", exc)
        return fallback

    parsed = _parse(raw)
    if parsed is None:
        logger.warning("Empty-result analysis was not valid JSON")
        return fallback

    raw_suggestions = parsed.get("suggestions")
    if isinstance(raw_suggestions, str):
        raw_suggestions = [raw_suggestions]
    if not isinstance(raw_suggestions, list):
        raw_suggestions = []
    suggestions = [s for s in (as_text(item) for item in raw_suggestions) if s]

    return EmptyResultAnalysis(
        reason=as_text(parsed.get("reason")),
        suggestions=suggestions[:5] or list(DEFAULT_SUGGESTIONS),
        alternative_question=as_text(parsed.get("alternativeQuestion")),
    )
