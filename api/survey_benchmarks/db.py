from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel, Session, create_engine

from . import models  # noqa: F401  (registers the tables on SQLModel.metadata)


def make_engine(db_url: str) -> Engine:
    connect_args = {"check_same_thread": False} if db_url.startswith("sqlite") else {}
    return create_engine(db_url, echo=False, connect_args=connect_args)


def init_db(engine: Engine) -> None:
    SQLModel.metadata.create_all(engine)
    _ensure_column(engine, "surveyrowrecord", "position", "INTEGER DEFAULT 0")


@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    with Session(engine) as session:
        yield session


def _ensure_column(engine: Engine, table_name: str, column_name: str, column_type_sql: str) -> None:
    """Best-effort addition of columns missing from databases created by older builds."""
    try:
        inspector = inspect(engine)
        existing = {col["name"] for col in inspector.get_columns(table_name)}
        if column_name in existing:
            return
    except SQLAlchemyError:
        return

    ddl = f"ALTER TABLE {table_name} ADD COLUMN {column_name} {column_type_sql}"
    try:
        with engine.begin() as conn:
            conn.execute(text(ddl))
    except SQLAlchemyError:
        # Column may have been added concurrently, or the dialect refuses ALTER TABLE
        return
