# report_assistant/services/sql_generation_service.py

import json
import logging
import re
from typing import Any, Dict, List, Optional

from report_assistant.core.errors import LLMCreditsExhaustedError, LLMError, LLMRateLimitError
from report_assistant.schemas.pipeline import GeneratedQuery, GenerationFailure, GenerationOutcome

logger = logging.getLogger(__name__)

SQL_TOOL_NAME = "execute_sql_query"

SQL_TOOLS: List[Dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": SQL_TOOL_NAME,
            "description": "Generate a SQL SELECT query to get data for answering the user's question",
            "parameters": {
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "The PostgreSQL SELECT query to execute",
                    },
                    "explanation": {
                        "type": "string",
                        "description": "Brief technical explanation of the query (for debugging)",
                    },
                },
                "required": ["query", "explanation"],
            },
        },
    }
]

# forces the model to answer through the function
SQL_TOOL_CHOICE = {"type": "function", "function": {"name": SQL_TOOL_NAME}}

SQL_FENCE_RE = re.compile(r"```(?:sql)?\s*(.*?)```", re.IGNORECASE | re.DOTALL)

HELP_MESSAGE = (
    "I'm sorry, I couldn't understand that question. Could you rephrase it? "
    "Try asking something like 'How many hours did John work last week?' "
    "or 'Show me projects over budget'."
)


def as_text(value: Any) -> Optional[str]:
    """Stripped string from model JSON, or None for anything that is not a non-empty string."""
    if not isinstance(value, str):
        return None
    return value.strip() or None


def extract_fenced_sql(text: str) -> Optional[str]:
    match = SQL_FENCE_RE.search(text or "")
    if not match:
        return None
    sql = match.group(1).strip()
    return sql or None


def _from_tool_call(message: Dict[str, Any]) -> Optional[GeneratedQuery]:
    for call in message.get("tool_calls") or []:
        function = call.get("function") or {}
        if function.get("name") != SQL_TOOL_NAME:
            continue
        args = function.get("arguments") or {}
        # some gateways hand back the arguments already decoded
        if isinstance(args, str):
            try:
                args = json.loads(args)
            except json.JSONDecodeError as exc:
                logger.warning("Failed to parse tool call arguments: %s", exc)
                continue
        if not isinstance(args, dict):
            continue
        sql = as_text(args.get("query"))
        if sql:
            return GeneratedQuery(sql=sql, explanation=as_text(args.get("explanation")) or "")
    return None


def _from_content(content: str) -> Optional[GeneratedQuery]:
    if not content:
        return None
    logger.info("Attempting to extract SQL from content")

    try:
        parsed = json.loads(content)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        sql = as_text(parsed.get("query")) or as_text(parsed.get("sql"))
        if sql:
            return GeneratedQuery(sql=sql, explanation=as_text(parsed.get("explanation")) or "")

    match = SQL_FENCE_RE.search(content)
    if match and match.group(1).strip():
        explanation = content.replace(match.group(0), "").strip()
        return GeneratedQuery(sql=match.group(1).strip(), explanation=explanation)
    return None


def parse_generation_message(message: Dict[str, Any]) -> GenerationOutcome:
    """Structured call first, then JSON content, then a fenced code block."""
    generated = _from_tool_call(message) or _from_content(as_text(message.get("content")) or "")
    if generated is None:
        return GenerationFailure(reason="Could not extract SQL query from AI response")
    return generated


async def generate_query(llm, messages: List[Dict[str, str]], model: Optional[str] = None) -> GenerationOutcome:
    """
    Ask the SQL model for exactly one query through the execute_sql_query function.

    Rate-limit and credit errors propagate so the endpoint can answer with the
    gateway's status; any other model failure is a generation failure.
    """
    try:
        message = await llm.chat_with_tools(messages, tools=SQL_TOOLS, tool_choice=SQL_TOOL_CHOICE, model=model)
    except (LLMRateLimitError, LLMCreditsExhaustedError):
        raise
    except LLMError as exc:
        logger.error("SQL generation call failed: %s", exc)
        return GenerationFailure(reason=str(exc))

    outcome = parse_generation_message(message)
    if isinstance(outcome, GenerationFailure):
        logger.error(outcome.reason)
    else:
        logger.info("Generated SQL: %s", outcome.sql)
        logger.info("Explanation: %s", outcome.explanation)
    return outcome
