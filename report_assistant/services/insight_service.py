# report_assistant/services/insight_service.py

import json
import logging
import re
from typing import Any, Dict, List, Optional

from report_assistant.core.errors import LLMError

logger = logging.getLogger(__name__)

# wording that signals the user wants the table, not just a one-line answer
DETAIL_PATTERNS = [
    re.compile(r"\bshow\s+(me\s+)?", re.IGNORECASE),
    re.compile(r"\blist\s+(all\s+)?", re.IGNORECASE),
    re.compile(r"\bexport\b", re.IGNORECASE),
    re.compile(r"\breport\b", re.IGNORECASE),
    re.compile(r"\bbreakdown\b", re.IGNORECASE),
    re.compile(r"\bdetail(s|ed)?\b", re.IGNORECASE),
    re.compile(r"\btable\b", re.IGNORECASE),
    re.compile(r"\ball\s+\w+", re.IGNORECASE),
    re.compile(r"\bby\s+(project|person|employee|month|week|category|vendor|client|payee)\b", re.IGNORECASE),
]

INSIGHT_SYSTEM_PROMPT = """
You are a construction business analyst.

Given a user's question and a sample of query results, write 2-5 short bullet
points ("- ...") with actionable business observations.

[Rules]
- Use ONLY numbers that appear in the sample rows. Do not invent data.
- Flag anything concerning (negative margins, overruns, unusually high costs).
- No headings, no introduction, no closing sentence. Bullets only.
"""

MIN_ROWS_FOR_INSIGHTS = 3


def wants_detailed_data(question: str) -> bool:
    return any(pattern.search(question or "") for pattern in DETAIL_PATTERNS)


def should_generate_insights(question: str, row_count: int) -> bool:
    return wants_detailed_data(question) and row_count >= MIN_ROWS_FOR_INSIGHTS


def _keep_bullets(raw: str, max_bullets: int = 5) -> Optional[str]:
    bullets = [
        line.strip()
        for line in (raw or "").splitlines()
        if line.strip().startswith(("-", "*", "•"))
    ]
    if not bullets:
        return raw.strip() or None
    return "\n".join(bullets[:max_bullets])


async def generate_insights(
    llm,
    question: str,
    rows: List[Dict[str, Any]],
    row_count: int,
    max_preview_rows: int = 10,
    model: Optional[str] = None,
) -> Optional[str]:
    """
    Bullet-point observations over the first `max_preview_rows` rows.
    Failure is silent: the response simply has no insights.
    """
    payload = {
        "question": question,
        "row_count": row_count,
        "rows_preview": rows[:max_preview_rows],
    }
    messages = [
        {"role": "system", "content": INSIGHT_SYSTEM_PROMPT},
        {"role": "user", "content": json.dumps(payload, ensure_ascii=False, default=str)},
    ]

    try:
        raw = await llm.chat(messages, model=model)
    except LLMError as exc:
        logger.warning("Failed to generate insights: %s", exc)
        return None

    return _keep_bullets(raw)
