# report_assistant/schemas/report.py
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from report_assistant.schemas.pipeline import ChatMessage, FieldDescriptor


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReportRequest(_CamelModel):
    query: str = Field(min_length=1)
    conversation_history: List[ChatMessage] = Field(default_factory=list)


class DebugInfo(_CamelModel):
    sql_attempted: Optional[str] = None
    error_type: Optional[str] = None
    suggestion: Optional[str] = None


class ReportResponse(_CamelModel):
    success: bool = True
    answer: str
    show_details_by_default: bool = False
    query: str
    explanation: Optional[str] = None
    data: List[Dict[str, Any]] = Field(default_factory=list)
    fields: List[FieldDescriptor] = Field(default_factory=list)
    row_count: int = 0
    truncated: bool = False
    insights: Optional[str] = None
    retry_attempted: Optional[bool] = None
    simplified_query: Optional[str] = None
    kpi_version: str


class ReportErrorResponse(_CamelModel):
    success: bool = False
    error: str
    query: Optional[str] = None
    answer: str
    debug_info: Optional[DebugInfo] = None
