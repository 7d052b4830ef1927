# report_assistant/api/v1/endpoints/report.py
import logging
from typing import Union

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from report_assistant.core.errors import (
    ConfigurationError,
    LLMCreditsExhaustedError,
    LLMRateLimitError,
)
from report_assistant.db.session import get_db
from report_assistant.schemas.pipeline import QueryRequest
from report_assistant.schemas.report import ReportErrorResponse, ReportRequest, ReportResponse
from report_assistant.services.report_service import ReportPipeline, get_report_pipeline

logger = logging.getLogger(__name__)

router = APIRouter()

GENERIC_FAILURE_ANSWER = "Sorry, I encountered an error processing your request. Please try again."


def _failure(status_code: int, error: str, answer: str = GENERIC_FAILURE_ANSWER) -> JSONResponse:
    body = ReportErrorResponse(error=error, answer=answer)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


@router.post(
    "/ai-report-assistant",
    response_model=Union[ReportResponse, ReportErrorResponse],
    response_model_exclude_none=True,
)
async def ai_report_assistant(
    req: ReportRequest,
    db: Session = Depends(get_db),
    pipeline: ReportPipeline = Depends(get_report_pipeline),
):
    """
    Answer a free-text question about the business data with a narrative
    answer plus the rows and column metadata behind it.
    """
    request = QueryRequest(
        natural_language_query=req.query,
        conversation_history=tuple(req.conversation_history),
    )

    try:
        return await pipeline.run(db, request)
    except ConfigurationError as exc:
        logger.error("AI Report Assistant configuration error: %s", exc)
        return _failure(500, "AI service is not configured")
    except LLMRateLimitError:
        return _failure(429, "Rate limit exceeded. Please try again in a moment.")
    except LLMCreditsExhaustedError:
        return _failure(402, "AI credits exhausted. Please contact your administrator.")
    except Exception as exc:
        logger.exception("AI Report Assistant error")
        return _failure(500, str(exc) or "Unknown error occurred")
