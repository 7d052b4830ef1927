# report_assistant/schemas/pipeline.py
"""
Values passed between pipeline stages. All of them live for one request only.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant", "system"]
    content: str


class QueryRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    natural_language_query: str
    conversation_history: tuple[ChatMessage, ...] = ()


# ---------------------------------------------------------
# Schema context
# ---------------------------------------------------------
class ColumnInfo(BaseModel):
    name: str
    type: str


class TableInfo(BaseModel):
    name: str
    columns: List[ColumnInfo] = Field(default_factory=list)


class ViewInfo(BaseModel):
    schema_name: Optional[str] = None
    name: str
    columns: List[ColumnInfo] = Field(default_factory=list)

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.name}" if self.schema_name else self.name


class EnumInfo(BaseModel):
    name: str
    values: List[str] = Field(default_factory=list)


class Relationship(BaseModel):
    table: str
    column: str
    foreign_table: str
    foreign_column: str


class SchemaContext(BaseModel):
    tables: List[TableInfo] = Field(default_factory=list)
    views: List[ViewInfo] = Field(default_factory=list)
    enums: List[EnumInfo] = Field(default_factory=list)
    relationships: List[Relationship] = Field(default_factory=list)


# ---------------------------------------------------------
# Generation
# ---------------------------------------------------------
class GeneratedQuery(BaseModel):
    model_config = ConfigDict(frozen=True)

    sql: str
    explanation: str = ""


class GenerationFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    reason: str


GenerationOutcome = Union[GeneratedQuery, GenerationFailure]


# ---------------------------------------------------------
# Execution / classification / retry
# ---------------------------------------------------------
class ExecutionResult(BaseModel):
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    row_count: int = Field(default=0, ge=0)
    truncated: bool = False


class ErrorCategory(str, Enum):
    COLUMN_NOT_FOUND = "ColumnNotFound"
    TABLE_NOT_FOUND = "TableNotFound"
    SYNTAX_ERROR = "SyntaxError"
    TIMEOUT = "Timeout"
    OTHER = "Other"


class ErrorClassification(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: ErrorCategory
    message: str
    suggestion: str
    retryable: bool


class RetryStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANNOT_RETRY = "cannot_retry"


class RetryOutcome(BaseModel):
    status: RetryStatus
    simplified_sql: Optional[str] = None
    result: Optional[ExecutionResult] = None
    error: Optional[str] = None

    @property
    def attempted(self) -> bool:
        # an outcome only exists once the retry request was made
        return True

    @property
    def succeeded(self) -> bool:
        return self.status == RetryStatus.SUCCEEDED


# ---------------------------------------------------------
# Diagnostics / answer
# ---------------------------------------------------------
class EmptyResultAnalysis(BaseModel):
    reason: Optional[str] = None
    suggestions: List[str] = Field(default_factory=list)
    alternative_question: Optional[str] = None


class FieldDescriptor(BaseModel):
    key: str
    label: str
    type: Literal["text", "number", "currency", "percent", "date"]


class Answer(BaseModel):
    text: str
    insights: Optional[str] = None


# ---------------------------------------------------------
# Query log
# ---------------------------------------------------------
class QueryLogEntry(BaseModel):
    """One append-only record per terminal or retry transition."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    user_query: str
    sql: Optional[str] = None
    query_intent: Optional[Literal["aggregation", "lookup", "comparison", "time_based"]] = None
    kpis_used: List[str] = Field(default_factory=list)
    status: Literal["success", "error", "empty", "retry_success"]
    row_count: Optional[int] = None
    execution_time_ms: int = 0
    error: Optional[str] = None
    retry_attempted: Optional[bool] = None
