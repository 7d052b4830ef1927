# report_assistant/services/query_logger.py

import logging
import re
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from report_assistant.core.logging import QUERY_LOG_LOGGER_NAME
from report_assistant.schemas.pipeline import QueryLogEntry

_AGGREGATE_RE = re.compile(r"\b(sum|count|avg|min|max)\s*\(|\bgroup\s+by\b", re.IGNORECASE)
_DATE_RE = re.compile(
    r"\b(date_trunc|current_date|current_timestamp|interval)\b|\bnow\s*\(|\w*_date\s*(>=|<=|>|<|between)",
    re.IGNORECASE,
)
_ORDER_RE = re.compile(r"\border\s+by\b", re.IGNORECASE)
_RANGE_FILTER_RE = re.compile(r"\bwhere\b.*?(<|>)", re.IGNORECASE | re.DOTALL)
_WHERE_RE = re.compile(r"\bwhere\b", re.IGNORECASE)


def detect_query_intent(sql: Optional[str]) -> Optional[str]:
    """Best-effort label for observability only; nothing downstream reads it."""
    if not sql:
        return None
    if _DATE_RE.search(sql):
        return "time_based"
    if _AGGREGATE_RE.search(sql):
        return "aggregation"
    if _ORDER_RE.search(sql) or _RANGE_FILTER_RE.search(sql):
        return "comparison"
    if _WHERE_RE.search(sql):
        return "lookup"
    return None


def detect_kpis(kpi_fields: Iterable[str], *texts: Optional[str]) -> List[str]:
    haystack = " ".join(t for t in texts if t).lower()
    if not haystack:
        return []
    return sorted(
        kpi for kpi in kpi_fields
        if re.search(rf"\b{re.escape(kpi.lower())}\b", haystack)
    )


class QueryLogger:
    """
    Append-only sink of QueryLogEntry records, one JSON line each.

    Entries are never edited after emit(); a retry emits a second entry.
    """

    def __init__(self, sink: Optional[Callable[[str], None]] = None, path: Optional[str] = None):
        self._logger = logging.getLogger(QUERY_LOG_LOGGER_NAME)
        self._sink = sink or self._logger.info
        self._path = Path(path) if path else None

    def emit(self, entry: QueryLogEntry) -> None:
        line = entry.model_dump_json(by_alias=True, exclude_none=True)
        self._sink(line)
        if self._path is not None:
            try:
                with self._path.open("a", encoding="utf-8") as f:
                    f.write(line + "\n")
            except OSError as exc:
                self._logger.error("Could not append query log entry to %s: %s", self._path, exc)
