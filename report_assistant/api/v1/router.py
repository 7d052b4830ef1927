# report_assistant/api/v1/router.py

from fastapi import APIRouter, Depends

from report_assistant.core.config import get_settings
from report_assistant.services.report_service import ReportPipeline, get_report_pipeline
from .endpoints import report

api_router = APIRouter(prefix=get_settings().API_V1_STR)

# POST /api/v1/ai-report-assistant
api_router.include_router(report.router, tags=["reports"])


@api_router.get("/health", tags=["health"])
async def health(pipeline: ReportPipeline = Depends(get_report_pipeline)):
    return {"status": "ok", "kpiVersion": pipeline.kb.version}
