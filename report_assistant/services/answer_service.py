# report_assistant/services/answer_service.py

import json
import logging
from typing import Any, Dict, List, Optional

from report_assistant.core.errors import LLMError
from report_assistant.schemas.pipeline import EmptyResultAnalysis

logger = logging.getLogger(__name__)

ANSWER_SYSTEM_PROMPT = (
    "You are a helpful assistant that gives brief, natural answers. "
    "Be conversational and use specific numbers."
)

NO_DATA_MESSAGE = (
    "I couldn't find any data matching your question. This could mean there are no "
    "records for that criteria, or the data hasn't been entered yet."
)


def _format_scalar(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, float):
        return f"{value:,.2f}"
    return str(value)


def fallback_answer(rows: List[Dict[str, Any]], row_count: int, explanation: str = "") -> str:
    """Deterministic answer used whenever the answer model is unavailable."""
    if row_count == 0:
        return NO_DATA_MESSAGE
    if row_count == 1 and rows and len(rows[0]) == 1:
        value = next(iter(rows[0].values()))
        return f"The answer is {_format_scalar(value)}."
    noun = "result" if row_count == 1 else "results"
    return f"Found {row_count} {noun}. {explanation}".strip()


def format_empty_findings(analysis: EmptyResultAnalysis) -> str:
    lines = []
    if analysis.reason:
        lines.append(f"Possible reason: {analysis.reason}")
    if analysis.suggestions:
        lines.append("Suggestions:")
        lines.extend(f"- {s}" for s in analysis.suggestions)
    if analysis.alternative_question:
        lines.append(f'Try asking: "{analysis.alternative_question}"')
    return "\n".join(lines)


def build_answer_prompt(
    question: str,
    sql: str,
    rows: List[Dict[str, Any]],
    row_count: int,
    sample_rows: int = 20,
    empty_analysis: Optional[EmptyResultAnalysis] = None,
) -> str:
    parts = [
        "Based on this data, give a BRIEF, CONVERSATIONAL answer to the user's question.",
        "",
        f'User question: "{question}"',
        f"SQL: {sql}",
        f"Query result: {row_count} rows",
        "",
        "Data:",
        json.dumps(rows[:sample_rows], ensure_ascii=False, indent=2, default=str),
    ]
    if row_count == 0 and empty_analysis is not None:
        parts += ["", "Why it may be empty:", format_empty_findings(empty_analysis)]
    parts += [
        "",
        "RULES:",
        "- Be direct and specific - use actual numbers from the data",
        "- Keep it to 1-3 sentences for simple questions",
        "- For lists, mention top 2-3 items then summarize the rest",
        "- Don't say \"based on the data\" or \"according to the query\" - just answer naturally",
        "- If there is no data, say so plainly and keep it to one sentence",
    ]
    return "\n".join(parts)


async def synthesize_answer(
    llm,
    question: str,
    sql: str,
    rows: List[Dict[str, Any]],
    row_count: int,
    explanation: str = "",
    empty_analysis: Optional[EmptyResultAnalysis] = None,
    sample_rows: int = 20,
    model: Optional[str] = None,
) -> str:
    prompt = build_answer_prompt(question, sql, rows, row_count, sample_rows, empty_analysis)
    messages = [
        {"role": "system", "content": ANSWER_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]

    answer = ""
    try:
        answer = (await llm.chat(messages, model=model)).strip()
    except LLMError as exc:
        logger.warning("Failed to generate answer: %s", exc)

    if not answer:
        answer = fallback_answer(rows, row_count, explanation)

    # suggestions are always part of an empty answer, whoever wrote the narrative
    if row_count == 0 and empty_analysis is not None:
        answer = f"{answer}\n\n{format_empty_findings(empty_analysis)}"
    return answer
