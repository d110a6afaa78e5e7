"""
Database engine, session factory, and metadata shared across the application.
"""

from __future__ import annotations

import logging
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from ..core.config import settings

logger = logging.getLogger(__name__)


def _build_engine_kwargs(db_url: str) -> dict[str, Any]:
    """Engine options for the configured dialect."""

    kwargs: dict[str, Any] = {"echo": settings.database_echo, "future": True}
    if db_url.startswith("sqlite"):
        # Sessions are handed to worker threads; SQLite waits on its file lock
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
    else:
        kwargs.update({"pool_size": 5, "max_overflow": 10, "pool_pre_ping": True})
    return kwargs


def create_db_engine(db_url: str, **overrides: Any) -> Engine:
    """
    Create an engine for ``db_url``.

    pysqlite defers BEGIN on its own and breaks SAVEPOINT, which the waitlist
    position retry relies on, so SQLite engines let SQLAlchemy emit BEGIN.
    """
    kwargs = _build_engine_kwargs(db_url)
    kwargs.update(overrides)
    db_engine = create_engine(db_url, **kwargs)
    if db_url.startswith("sqlite"):
        use_wal = ":memory:" not in db_url and db_url.rstrip("/") != "sqlite:"

        @event.listens_for(db_engine, "connect")
        def _configure_sqlite(dbapi_connection: Any, connection_record: Any) -> None:
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            if use_wal:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

        @event.listens_for(db_engine, "begin")
        def _sqlite_begin(conn: Any) -> None:
            conn.exec_driver_sql("BEGIN")

    return db_engine


engine: Engine = create_db_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Create every table registered on ``Base.metadata``."""
    from .. import models  # noqa: F401  (populate metadata)

    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables created")


__all__ = [
    "Base",
    "SessionLocal",
    "create_db_engine",
    "engine",
    "get_db",
    "init_db",
]
