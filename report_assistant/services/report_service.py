# report_assistant/services/report_service.py
"""
Natural-language report pipeline.

request -> schema -> grounding prompt -> SQL generation -> execution
  success -> (empty-result analysis) -> fields -> answer -> (insights)
  failure -> classify -> (one simplified retry) -> success branch or terminal error

Every executed attempt is recorded by the query logger.
"""

import logging
import time
from functools import lru_cache
from typing import Callable, Optional, Union

from sqlalchemy.orm import Session

from report_assistant.core.config import Settings, get_settings
from report_assistant.core.errors import ConfigurationError, QueryExecutionError, SchemaFetchError
from report_assistant.core.llm_client import build_llm_client
from report_assistant.schemas.pipeline import (
    Answer,
    ErrorClassification,
    ExecutionResult,
    GeneratedQuery,
    GenerationFailure,
    QueryLogEntry,
    QueryRequest,
    RetryOutcome,
    SchemaContext,
)
from report_assistant.schemas.report import DebugInfo, ReportErrorResponse, ReportResponse
from report_assistant.services.answer_service import synthesize_answer
from report_assistant.services.empty_result_service import analyze_empty_result
from report_assistant.services.error_classifier import classify_error
from report_assistant.services.field_types import infer_fields
from report_assistant.services.insight_service import (
    generate_insights,
    should_generate_insights,
    wants_detailed_data,
)
from report_assistant.services.knowledge_base import KnowledgeBase, load_knowledge_base
from report_assistant.services.prompt_service import build_messages, compose_system_prompt
from report_assistant.services.query_logger import QueryLogger, detect_kpis, detect_query_intent
from report_assistant.services.retry_service import attempt_simplified_retry
from report_assistant.services.schema_service import SchemaProvider
from report_assistant.services.sql_execution_service import QueryExecutor
from report_assistant.services.sql_generation_service import HELP_MESSAGE, generate_query

logger = logging.getLogger(__name__)

SCHEMA_FAILURE_ANSWER = (
    "Sorry, I couldn't load the database layout right now, so I can't look that up. "
    "Please try again in a moment."
)

ReportOutcome = Union[ReportResponse, ReportErrorResponse]


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class ReportPipeline:
    def __init__(
        self,
        llm,
        knowledge_base: KnowledgeBase,
        query_logger: QueryLogger,
        schema_provider: Callable[[Session], SchemaContext],
        executor: Callable[[Session, str], ExecutionResult],
        settings: Settings,
    ):
        self.llm = llm
        self.kb = knowledge_base
        self.query_logger = query_logger
        self.schema_provider = schema_provider
        self.executor = executor
        self.settings = settings

    async def run(self, db: Session, request: QueryRequest) -> ReportOutcome:
        if not self.settings.OPENAI_API_KEY:
            raise ConfigurationError("OPENAI_API_KEY is not configured")

        question = request.natural_language_query

        try:
            schema = self.schema_provider(db)
        except SchemaFetchError as exc:
            return ReportErrorResponse(error=str(exc), answer=SCHEMA_FAILURE_ANSWER)

        system_prompt = compose_system_prompt(self.kb, schema, question)
        messages = build_messages(request, system_prompt, self.settings.HISTORY_TURNS)

        logger.info("Calling AI to generate SQL for: %s", question)
        outcome = await generate_query(self.llm, messages, model=self.settings.OPENAI_SQL_MODEL)
        if isinstance(outcome, GenerationFailure):
            return ReportErrorResponse(error=outcome.reason, answer=HELP_MESSAGE)

        started = time.perf_counter()
        try:
            result = self.executor(db, outcome.sql)
        except QueryExecutionError as exc:
            return await self._recover(db, question, outcome, exc.message, _elapsed_ms(started))

        return await self._complete(question, outcome, outcome.sql, result, _elapsed_ms(started))

    # ---------------------------------------------------------
    # failure branch
    # ---------------------------------------------------------
    async def _recover(
        self,
        db: Session,
        question: str,
        generated: GeneratedQuery,
        error: str,
        elapsed_ms: int,
    ) -> ReportOutcome:
        classification = classify_error(error)
        logger.info(
            "Execution failed: category=%s retryable=%s",
            classification.category.value,
            classification.retryable,
        )
        self._log(question, generated.sql, generated.explanation, "error",
                  elapsed_ms=elapsed_ms, error=error, retry_attempted=False)

        if not classification.retryable:
            return self._error_response(generated.sql, generated.sql, error, classification, retry=None)

        started = time.perf_counter()
        retry = await attempt_simplified_retry(
            self.llm,
            db,
            self.executor,
            question=question,
            failed_sql=generated.sql,
            error=error,
            classification=classification,
            model=self.settings.OPENAI_SQL_MODEL,
        )
        elapsed_ms = _elapsed_ms(started)

        if retry.succeeded:
            return await self._complete(question, generated, retry.simplified_sql, retry.result, elapsed_ms, retry)

        # sql is None when nothing was re-executed
        self._log(question, retry.simplified_sql, generated.explanation, "error",
                  elapsed_ms=elapsed_ms, error=retry.error or error, retry_attempted=True)
        return self._error_response(
            generated.sql, retry.simplified_sql or generated.sql, error, classification, retry
        )

    def _error_response(
        self,
        sql: str,
        sql_attempted: str,
        error: str,
        classification: ErrorClassification,
        retry: Optional[RetryOutcome],
    ) -> ReportErrorResponse:
        lead = "I tried to look that up"
        if retry is not None:
            lead += " (and retried with a simpler query)"
        answer = f"{lead} but ran into an issue: {classification.message} {classification.suggestion}"
        if retry is not None and retry.error:
            logger.info("Retry did not recover: %s", retry.error)
        return ReportErrorResponse(
            error=error,
            query=sql,
            answer=answer,
            debug_info=DebugInfo(
                sql_attempted=sql_attempted,
                error_type=classification.category.value,
                suggestion=classification.suggestion,
            ),
        )

    # ---------------------------------------------------------
    # success branch
    # ---------------------------------------------------------
    async def _complete(
        self,
        question: str,
        generated: GeneratedQuery,
        executed_sql: str,
        result: ExecutionResult,
        elapsed_ms: int,
        retry: Optional[RetryOutcome] = None,
    ) -> ReportResponse:
        if retry is not None:
            status = "retry_success"
        elif result.row_count == 0:
            status = "empty"
        else:
            status = "success"
        self._log(question, executed_sql, generated.explanation, status,
                  elapsed_ms=elapsed_ms, row_count=result.row_count,
                  retry_attempted=True if retry is not None else None)

        empty_analysis = None
        if result.row_count == 0:
            empty_analysis = await analyze_empty_result(
                self.llm, question, executed_sql, model=self.settings.OPENAI_INSIGHT_MODEL
            )

        text = await synthesize_answer(
            self.llm,
            question,
            executed_sql,
            result.rows,
            result.row_count,
            explanation=generated.explanation,
            empty_analysis=empty_analysis,
            sample_rows=self.settings.ANSWER_SAMPLE_ROWS,
            model=self.settings.OPENAI_ANSWER_MODEL,
        )

        answer = Answer(text=text)
        if should_generate_insights(question, result.row_count):
            answer = Answer(
                text=text,
                insights=await generate_insights(
                    self.llm,
                    question,
                    result.rows,
                    result.row_count,
                    max_preview_rows=self.settings.INSIGHT_SAMPLE_ROWS,
                    model=self.settings.OPENAI_INSIGHT_MODEL,
                ),
            )

        return ReportResponse(
            answer=answer.text,
            show_details_by_default=wants_detailed_data(question),
            query=generated.sql,
            explanation=generated.explanation or None,
            data=result.rows,
            fields=infer_fields(result.rows),
            row_count=result.row_count,
            truncated=result.truncated,
            insights=answer.insights,
            retry_attempted=retry.attempted if retry is not None else None,
            simplified_query=retry.simplified_sql if retry is not None else None,
            kpi_version=self.kb.version,
        )

    def _log(
        self,
        question: str,
        sql: Optional[str],
        explanation: str,
        status: str,
        elapsed_ms: int,
        row_count: Optional[int] = None,
        error: Optional[str] = None,
        retry_attempted: Optional[bool] = None,
    ) -> None:
        self.query_logger.emit(
            QueryLogEntry(
                user_query=question,
                sql=sql,
                query_intent=detect_query_intent(sql),
                kpis_used=detect_kpis(self.kb.kpi_fields, sql, explanation),
                status=status,
                row_count=row_count,
                execution_time_ms=elapsed_ms,
                error=error,
                retry_attempted=retry_attempted,
            )
        )


@lru_cache
def get_report_pipeline() -> ReportPipeline:
    settings = get_settings()
    return ReportPipeline(
        llm=build_llm_client(),
        knowledge_base=load_knowledge_base(settings.KNOWLEDGE_BASE_PATH),
        query_logger=QueryLogger(path=settings.QUERY_LOG_PATH),
        schema_provider=SchemaProvider(settings.REPORTING_SCHEMAS, settings.QUERY_TIMEOUT_SECONDS),
        executor=QueryExecutor(settings.QUERY_ROW_LIMIT, settings.QUERY_TIMEOUT_SECONDS),
        settings=settings,
    )
