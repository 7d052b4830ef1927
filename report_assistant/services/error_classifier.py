# report_assistant/services/error_classifier.py
"""
Execution-error classification.

Rules are evaluated top to bottom against the lower-cased error text; the first
match wins. Column rules come before table rules because PostgreSQL reports a
missing column as `column "x" of relation "y" does not exist`.
"""

from dataclasses import dataclass
from typing import Callable, List, Tuple

from report_assistant.schemas.pipeline import ErrorCategory, ErrorClassification


def _contains_all(*needles: str) -> Callable[[str], bool]:
    return lambda text: all(needle in text for needle in needles)


def _contains_any(*needles: str) -> Callable[[str], bool]:
    return lambda text: any(needle in text for needle in needles)


@dataclass(frozen=True)
class CategoryInfo:
    message: str
    suggestion: str
    retryable: bool


CLASSIFICATION_RULES: List[Tuple[Callable[[str], bool], ErrorCategory]] = [
    (_contains_all("column", "does not exist"), ErrorCategory.COLUMN_NOT_FOUND),
    (_contains_any("no such column", "unknown column", "column not found"), ErrorCategory.COLUMN_NOT_FOUND),
    (_contains_all("relation", "does not exist"), ErrorCategory.TABLE_NOT_FOUND),
    (_contains_all("table", "does not exist"), ErrorCategory.TABLE_NOT_FOUND),
    (_contains_any("no such table", "table not found"), ErrorCategory.TABLE_NOT_FOUND),
    (_contains_any("syntax error", "syntax_error"), ErrorCategory.SYNTAX_ERROR),
    (_contains_any("statement timeout", "timed out", "timeout", "canceling statement"), ErrorCategory.TIMEOUT),
]

CATEGORY_INFO = {
    ErrorCategory.COLUMN_NOT_FOUND: CategoryInfo(
        message="The query referenced a column that doesn't exist.",
        suggestion="Check the column names against the schema, or select fewer columns.",
        retryable=True,
    ),
    ErrorCategory.TABLE_NOT_FOUND: CategoryInfo(
        message="The query referenced a table or view that doesn't exist.",
        suggestion="Use an existing table, and prefix reporting views with 'reporting.'.",
        retryable=True,
    ),
    ErrorCategory.SYNTAX_ERROR: CategoryInfo(
        message="The generated query had a syntax error.",
        suggestion="Try rephrasing the question more simply.",
        retryable=True,
    ),
    ErrorCategory.TIMEOUT: CategoryInfo(
        message="The query took too long to run.",
        suggestion="Narrow the date range or ask about fewer projects.",
        retryable=True,
    ),
    ErrorCategory.OTHER: CategoryInfo(
        message="The query could not be run.",
        suggestion="Try rephrasing your question.",
        retryable=False,
    ),
}


def categorize(error_text: str) -> ErrorCategory:
    normalized = (error_text or "").lower()
    for predicate, category in CLASSIFICATION_RULES:
        if predicate(normalized):
            return category
    return ErrorCategory.OTHER


def classify_error(error_text: str) -> ErrorClassification:
    category = categorize(error_text)
    info = CATEGORY_INFO[category]
    return ErrorClassification(
        category=category,
        message=info.message,
        suggestion=info.suggestion,
        retryable=info.retryable,
    )
