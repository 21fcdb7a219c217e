"""
Database configuration and session management
"""
import re
import time
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import get_settings
from app.core.logging_config import LoggingConfig
from app.core.metrics import (db_connection_pool_size,
                              db_query_duration_seconds, db_queries_total)

logger = LoggingConfig.get_logger(__name__)

# Lazy initialization - nothing connects at import time
_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None

Base = declarative_base()

_TABLE_PATTERNS = {
    "select": re.compile(r"\bFROM\s+\"?(\w+)", re.IGNORECASE),
    "insert": re.compile(r"\bINTO\s+\"?(\w+)", re.IGNORECASE),
    "update": re.compile(r"^\s*UPDATE\s+\"?(\w+)", re.IGNORECASE),
    "delete": re.compile(r"\bFROM\s+\"?(\w+)", re.IGNORECASE),
}


def _statement_labels(statement: str):
    """Derive (operation, table) metric labels from a SQL statement"""
    stripped = statement.strip()
    operation = stripped.split()[0].lower() if stripped else "unknown"
    pattern = _TABLE_PATTERNS.get(operation)
    table = "unknown"
    if pattern:
        match = pattern.search(stripped)
        if match:
            table = match.group(1).lower()
    return operation, table


def _setup_db_metrics(engine: Engine):
    """Attach query and pool metrics to engine events"""

    @event.listens_for(engine, "before_cursor_execute")
    def receive_before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("query_start_time", []).append(time.time())

    @event.listens_for(engine, "after_cursor_execute")
    def receive_after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        if not conn.info.get("query_start_time"):
            return
        duration = time.time() - conn.info["query_start_time"].pop()
        operation, table = _statement_labels(statement)
        db_queries_total.labels(operation=operation, table=table).inc()
        db_query_duration_seconds.labels(operation=operation, table=table).observe(duration)

    def _update_pool_gauges(*_):
        pool = engine.pool
        checked_out = getattr(pool, "checkedout", None)
        size = getattr(pool, "size", None)
        if callable(checked_out) and callable(size):
            db_connection_pool_size.labels(state="active").set(checked_out())
            db_connection_pool_size.labels(state="idle").set(size() - checked_out())

    event.listen(engine, "checkout", _update_pool_gauges)
    event.listen(engine, "checkin", _update_pool_gauges)


def get_engine() -> Engine:
    """Get or create database engine (lazy initialization)"""
    global _engine
    if _engine is None:
        settings = get_settings()
        url = settings.database_url

        if url.startswith("sqlite"):
            # One shared connection so in-memory databases survive across sessions
            _engine = create_engine(
                url,
                echo=settings.log_sqlalchemy,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            _engine = create_engine(
                url,
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                pool_pre_ping=True,
                echo=settings.log_sqlalchemy,
                connect_args={
                    "connect_timeout": 5,
                    "options": "-c statement_timeout=5000",
                },
            )

        _setup_db_metrics(_engine)
        logger.info("Database engine created", extra={"dialect": _engine.dialect.name})

    return _engine


def get_session_local() -> sessionmaker:
    """Get or create session factory (lazy initialization)"""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _SessionLocal


def __getattr__(name):
    """Expose engine and SessionLocal as lazily created module attributes"""
    if name == "engine":
        return get_engine()
    if name == "SessionLocal":
        return get_session_local()
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database session
    """
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
