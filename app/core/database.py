"""Database configuration and session management.

Features:
- Connection pooling with configurable settings
- Slow query logging
- Indexes for the reconciler's hot queries
"""

import logging
import time
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import declarative_base, sessionmaker

from app.core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

engine_args: dict[str, Any] = {
    "echo": settings.debug and settings.enable_query_logging,
}

if settings.database_url.startswith("sqlite"):
    # Ensure data directory exists
    db_path = settings.database_url.replace("sqlite:///", "")
    if db_path and db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    engine_args["connect_args"] = {"check_same_thread": False}
else:
    engine_args.update({
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_timeout": settings.database_pool_timeout,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    })

engine = create_engine(settings.database_url, **engine_args)


@event.listens_for(engine, "before_cursor_execute")
def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    """Capture query start time for performance monitoring."""
    conn.info.setdefault("query_start_time", [])
    conn.info["query_start_time"].append(time.perf_counter())


@event.listens_for(engine, "after_cursor_execute")
def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    """Log slow queries based on configured threshold."""
    start_time = conn.info["query_start_time"].pop()
    total_time = (time.perf_counter() - start_time) * 1000

    if total_time > settings.slow_query_threshold_ms:
        logger.warning(
            f"Slow query detected ({total_time:.2f}ms): {statement[:200]}..."
        )


if settings.database_url.startswith("sqlite"):

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        """WAL mode so the API and reconciler can read while the other writes."""
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db() -> None:
    """Initialize database tables."""
    # Import models to register them with Base
    from app import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    _create_indexes()


def check_connection() -> None:
    """Round-trip to the database; raises if it is unreachable."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


def _create_indexes() -> None:
    """Create indexes missing from databases that predate them."""
    indexes = [index for table in Base.metadata.sorted_tables for index in table.indexes]

    with engine.connect() as conn:
        for index in indexes:
            try:
                index.create(conn, checkfirst=True)
            except Exception as e:
                logger.debug(f"Index creation skipped (may already exist): {e}")
        conn.commit()
