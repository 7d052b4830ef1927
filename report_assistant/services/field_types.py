# report_assistant/services/field_types.py
"""
Display types for result columns.

Inferred from the first row's runtime values and the column name. This is a
heuristic over sampled data, not a schema lookup: a column the
schema calls numeric but that arrives as a string stays `text`.
"""

import re
from decimal import Decimal
from typing import Any, Dict, List

from report_assistant.schemas.pipeline import FieldDescriptor

ISO_DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")

PERCENT_MARKERS = ("percent", "margin")
CURRENCY_MARKERS = ("amount", "cost", "total")


def humanize_key(key: str) -> str:
    # total_expenses -> Total Expenses
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), key.replace("_", " "))


def _is_numeric(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def infer_field_type(key: str, value: Any) -> str:
    lowered = key.lower()
    if _is_numeric(value):
        if any(marker in lowered for marker in PERCENT_MARKERS):
            return "percent"
        if any(marker in lowered for marker in CURRENCY_MARKERS):
            return "currency"
        return "number"
    if isinstance(value, str) and ISO_DATE_PREFIX.match(value):
        return "date"
    return "text"


def infer_fields(rows: List[Dict[str, Any]]) -> List[FieldDescriptor]:
    if not rows:
        return []
    first = rows[0]
    return [
        FieldDescriptor(key=key, label=humanize_key(key), type=infer_field_type(key, value))
        for key, value in first.items()
    ]
