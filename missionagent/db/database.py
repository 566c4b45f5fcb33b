"""
Engine and session factory construction.
"""

import logging
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the given database URL.

    SQLite engines are made usable from worker threads, enforce foreign
    keys, and in-memory databases share one connection so every session
    sees the same data.

    Args:
        url: SQLAlchemy database URL
        echo: Log every statement

    Returns:
        Configured Engine
    """
    kwargs = {"echo": echo, "future": True}

    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if _is_memory_sqlite(url):
            kwargs["poolclass"] = StaticPool

    engine = create_engine(url, **kwargs)

    if url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    logger.debug(f"[Database] Engine created for {engine.url.render_as_string(hide_password=True)}")
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine, drop_existing: bool = False) -> None:
    """
    Create all tables.

    Args:
        engine: Target engine
        drop_existing: Drop the tables first
    """
    if drop_existing:
        Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    logger.info("[Database] Schema ready")


def build_engine_from_config(url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """Create an engine from explicit values or the global configuration."""
    from ..core.config_manager import get_config

    db_config = get_config().database
    return create_db_engine(url or db_config.url, db_config.echo if echo is None else echo)
