# report_assistant/core/config.py

from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "RCG Work AI Report Assistant"
    API_V1_STR: str = "/api/v1"

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = ["*"]

    # ========= OPENAI-compatible gateway =========
    # None => configuration-fatal, checked per request
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_TIMEOUT_SECONDS: float = 60.0

    # ========= role models =========
    # 1) natural language -> SQL (initial generation and the simplified retry)
    OPENAI_SQL_MODEL: str = "gpt-4.1-mini"

    # 2) rows -> short narrative answer
    OPENAI_ANSWER_MODEL: str = "gpt-4.1-mini"

    # 3) insights + empty-result diagnosis
    OPENAI_INSIGHT_MODEL: str = "gpt-4.1"

    # ========= prompt sizing =========
    HISTORY_TURNS: int = 10
    ANSWER_SAMPLE_ROWS: int = 20
    INSIGHT_SAMPLE_ROWS: int = 10

    # ========= DB =========
    SQLALCHEMY_DATABASE_URI: str
    REPORTING_SCHEMAS: List[str] = ["reporting"]
    QUERY_ROW_LIMIT: int = 1000
    QUERY_TIMEOUT_SECONDS: float = 30.0

    # ========= knowledge / logging =========
    KNOWLEDGE_BASE_PATH: Optional[str] = None
    QUERY_LOG_PATH: Optional[str] = None
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()
