import json
import os

os.environ.setdefault("SQLALCHEMY_DATABASE_URI", "sqlite://")

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from report_assistant.core.config import Settings
from report_assistant.core.errors import LLMError
from report_assistant.services.knowledge_base import load_knowledge_base
from report_assistant.services.query_logger import QueryLogger
from report_assistant.services.report_service import ReportPipeline
from report_assistant.services.schema_service import SchemaProvider
from report_assistant.services.sql_execution_service import QueryExecutor


def tool_message(sql: str, explanation: str = "test query") -> dict:
    return {
        "content": None,
        "tool_calls": [
            {
                "type": "function",
                "function": {
                    "name": "execute_sql_query",
                    "arguments": json.dumps({"query": sql, "explanation": explanation}),
                },
            }
        ],
    }


class ScriptedLLM:
    """Returns queued responses in order; an Exception in the queue is raised instead."""

    def __init__(self, tool_messages=None, chat_responses=None):
        self.tool_messages = list(tool_messages or [])
        self.chat_responses = list(chat_responses or [])
        self.tool_calls = []
        self.chat_calls = []

    async def chat_with_tools(self, messages, tools, tool_choice="auto", model=None):
        self.tool_calls.append({"messages": messages, "tools": tools, "tool_choice": tool_choice, "model": model})
        item = self.tool_messages.pop(0) if self.tool_messages else {"content": ""}
        if isinstance(item, Exception):
            raise item
        return item

    async def chat(self, messages, model=None):
        self.chat_calls.append({"messages": messages, "model": model})
        if not self.chat_responses:
            raise LLMError("no scripted response left")
        item = self.chat_responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def system_prompts(self):
        return [call["messages"][0]["content"] for call in self.chat_calls]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE payees (id INTEGER PRIMARY KEY, payee_name TEXT, is_internal BOOLEAN)"))
        conn.execute(text(
            "CREATE TABLE expenses ("
            " id INTEGER PRIMARY KEY,"
            " payee_id INTEGER REFERENCES payees(id),"
            " category TEXT, hours NUMERIC, amount NUMERIC, expense_date TEXT)"
        ))
        conn.execute(text(
            "CREATE TABLE projects ("
            " id INTEGER PRIMARY KEY, project_name TEXT,"
            " contracted_amount INTEGER, total_expenses INTEGER, margin_percentage REAL)"
        ))
        conn.execute(text("CREATE VIEW project_summary AS SELECT project_name, margin_percentage FROM projects"))

        conn.execute(
            text("INSERT INTO payees VALUES (:id, :name, :internal)"),
            [
                {"id": 1, "name": "John Carter", "internal": True},
                {"id": 2, "name": "Acme Lumber", "internal": False},
            ],
        )
        conn.execute(
            text("INSERT INTO expenses VALUES (:id, :payee_id, :category, :hours, :amount, :expense_date)"),
            [
                {"id": 1, "payee_id": 1, "category": "labor_internal", "hours": 8, "amount": 600, "expense_date": "2024-01-05"},
                {"id": 2, "payee_id": 1, "category": "labor_internal", "hours": 6.5, "amount": 487.5, "expense_date": "2024-01-06"},
                {"id": 3, "payee_id": 2, "category": "materials", "hours": None, "amount": 1250, "expense_date": "2024-01-06"},
            ],
        )
        conn.execute(
            text("INSERT INTO projects VALUES (:id, :name, :contracted, :expenses, :margin)"),
            [
                {"id": 1, "name": "Smith Kitchen", "contracted": 50000, "expenses": 42000, "margin": 16.0},
                {"id": 2, "name": "Oak Street", "contracted": 80000, "expenses": 85000, "margin": -6.25},
                {"id": 3, "name": "Elm Bath", "contracted": 20000, "expenses": 15000, "margin": 25.0},
            ],
        )
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def knowledge_base():
    return load_knowledge_base()


@pytest.fixture
def settings():
    return Settings(SQLALCHEMY_DATABASE_URI="sqlite://", OPENAI_API_KEY="test-key")


@pytest.fixture
def log_lines():
    return []


@pytest.fixture
def make_pipeline(knowledge_base, settings, log_lines):
    def _make(llm, schema_provider=None, executor=None, settings_override=None):
        return ReportPipeline(
            llm=llm,
            knowledge_base=knowledge_base,
            query_logger=QueryLogger(sink=log_lines.append),
            schema_provider=schema_provider or SchemaProvider(),
            executor=executor or QueryExecutor(row_limit=100, timeout_seconds=5),
            settings=settings_override or settings,
        )

    return _make
