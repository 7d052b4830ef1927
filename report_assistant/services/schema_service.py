# report_assistant/services/schema_service.py

import logging
from typing import Iterable, List, Optional

from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from report_assistant.core.errors import SchemaFetchError
from report_assistant.schemas.pipeline import (
    ColumnInfo,
    EnumInfo,
    Relationship,
    SchemaContext,
    TableInfo,
    ViewInfo,
)

logger = logging.getLogger(__name__)


def _columns(inspector, name: str, schema: Optional[str] = None) -> List[ColumnInfo]:
    return [
        ColumnInfo(name=col["name"], type=str(col["type"]).lower())
        for col in inspector.get_columns(name, schema=schema)
    ]


def fetch_schema_context(
    db: Session,
    reporting_schemas: Iterable[str] = (),
    timeout_seconds: Optional[float] = None,
) -> SchemaContext:
    """
    Introspect the live database: tables with columns, views (default schema
    plus the reporting schemas), enums where the dialect has them, and
    foreign-key relationships.

    Fetched fresh for every request.
    """
    try:
        db.rollback()
        conn = db.connection()
        if timeout_seconds and conn.dialect.name == "postgresql":
            conn.execute(text(f"SET LOCAL statement_timeout = {int(timeout_seconds * 1000)}"))
        inspector = inspect(conn)

        tables: List[TableInfo] = []
        relationships: List[Relationship] = []
        for table_name in inspector.get_table_names():
            tables.append(TableInfo(name=table_name, columns=_columns(inspector, table_name)))
            for fk in inspector.get_foreign_keys(table_name):
                for column, foreign_column in zip(fk["constrained_columns"], fk["referred_columns"]):
                    relationships.append(
                        Relationship(
                            table=table_name,
                            column=column,
                            foreign_table=fk["referred_table"],
                            foreign_column=foreign_column,
                        )
                    )

        views: List[ViewInfo] = [
            ViewInfo(name=view_name, columns=_columns(inspector, view_name))
            for view_name in inspector.get_view_names()
        ]
        for schema in reporting_schemas:
            for view_name in inspector.get_view_names(schema=schema):
                views.append(
                    ViewInfo(
                        schema_name=schema,
                        name=view_name,
                        columns=_columns(inspector, view_name, schema=schema),
                    )
                )

        enums: List[EnumInfo] = []
        # only the PostgreSQL inspector knows about enums
        if hasattr(inspector, "get_enums"):
            enums = [
                EnumInfo(name=enum["name"], values=list(enum["labels"]))
                for enum in inspector.get_enums()
            ]
    except SQLAlchemyError as exc:
        logger.error("Schema fetch error: %s", exc)
        raise SchemaFetchError(f"Failed to fetch database schema: {exc}") from exc
    finally:
        db.rollback()

    context = SchemaContext(tables=tables, views=views, enums=enums, relationships=relationships)
    logger.info(
        "Schema loaded: %s tables, %s views, %s enums",
        len(context.tables),
        len(context.views),
        len(context.enums),
    )
    return context


class SchemaProvider:
    """Callable wrapper so the pipeline can be handed an alternate provider in tests."""

    def __init__(self, reporting_schemas: Iterable[str] = (), timeout_seconds: Optional[float] = None):
        self.reporting_schemas = list(reporting_schemas)
        self.timeout_seconds = timeout_seconds

    def __call__(self, db: Session) -> SchemaContext:
        return fetch_schema_context(db, self.reporting_schemas, timeout_seconds=self.timeout_seconds)
