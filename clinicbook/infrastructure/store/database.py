from __future__ import annotations

import logging
import time

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

logger = logging.getLogger(__name__)

Base = declarative_base()

SQLITE_BUSY_TIMEOUT_SECONDS = 30
SLOW_QUERY_THRESHOLD = 1.0


def create_db_engine(database_url: str, log_slow_queries: bool = True) -> Engine:
    """
    Build the engine shared by the calendar and session stores.

    Every transaction is serializable: SQLite transactions start with
    BEGIN IMMEDIATE so writers queue on the database lock, other backends
    run at SERIALIZABLE isolation and abort the losing writer.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_SECONDS},
        )
        _use_immediate_transactions(engine)
    else:
        engine = create_engine(
            database_url,
            pool_pre_ping=True,
            pool_recycle=300,
            isolation_level="SERIALIZABLE",
        )
    logger.info("Database engine created", extra={"dialect": engine.dialect.name})

    if log_slow_queries:
        _log_slow_queries(engine)
    return engine


def _use_immediate_transactions(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def on_connect(dbapi_connection, _connection_record):
        # Hand transaction control to SQLAlchemy so BEGIN can be IMMEDIATE.
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _log_slow_queries(engine: Engine) -> None:
    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        conn.info.setdefault("query_start_time", []).append(time.time())

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        total = time.time() - conn.info["query_start_time"].pop(-1)
        if total > SLOW_QUERY_THRESHOLD:
            logger.warning(f"Slow query ({total:.2f}s): {statement[:200]}...")


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def init_schema(engine: Engine) -> None:
    """Create tables and indexes if they don't exist."""
    from clinicbook.infrastructure.store import sql_models  # noqa: F401  registers the tables

    Base.metadata.create_all(engine)
