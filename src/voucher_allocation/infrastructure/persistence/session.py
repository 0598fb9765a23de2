# -*- coding: utf-8 -*-
from __future__ import annotations

from time import perf_counter
from typing import Callable

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .models import Base


def make_engine(
    dsn: str,
    *,
    statement_timeout_ms: int = 2000,
    echo: bool = False,
    query_observer: Callable[[float], None] | None = None,
) -> Engine:
    if dsn.startswith("sqlite"):
        engine = create_engine(
            dsn,
            echo=echo,
            future=True,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    else:
        engine = create_engine(
            dsn,
            echo=echo,
            pool_size=20,
            max_overflow=40,
            pool_timeout=5,
            pool_recycle=1800,
            pool_pre_ping=True,
            future=True,
        )

        @event.listens_for(engine, "connect")
        def set_statement_timeout(dbapi_connection, connection_record):  # pragma: no cover - driver specific
            cursor = dbapi_connection.cursor()
            cursor.execute(f"SET statement_timeout TO {int(statement_timeout_ms)}")
            cursor.close()

    if query_observer is not None:

        @event.listens_for(engine, "before_cursor_execute")
        def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            context._query_start_time = perf_counter()

        @event.listens_for(engine, "after_cursor_execute")
        def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            query_observer(perf_counter() - getattr(context, "_query_start_time", perf_counter()))

    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, class_=Session, expire_on_commit=False, future=True)


def create_schema(engine: Engine) -> None:
    Base.metadata.create_all(engine)
