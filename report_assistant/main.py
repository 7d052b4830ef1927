# report_assistant/main.py

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from report_assistant.api.v1.router import api_router
from report_assistant.core.config import get_settings
from report_assistant.core.logging import setup_logging

settings = get_settings()
setup_logging(settings.LOG_LEVEL)

app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
)

# ---------------------------------------------------------
# CORS (preflight OPTIONS is answered by the middleware)
# ---------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

# ---------------------------------------------------------
# API router (/api/v1/...)
# ---------------------------------------------------------
app.include_router(api_router)
