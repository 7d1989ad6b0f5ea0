"""
Database connection management for Pulse.

Engines and session factories are created explicitly and owned by the
caller (the event store or a CLI command); nothing is cached at module
level.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)


def get_db_path(database_url: str) -> Optional[Path]:
    """
    Get the database file path of a SQLite URL.

    Returns:
        Path to the SQLite database file, or None for other backends and
        in-memory databases
    """
    if database_url.startswith("sqlite:///") and database_url != "sqlite:///:memory:":
        return Path(database_url[10:])
    return None


def init_engine(database_url: str) -> Engine:
    """
    Create the SQLAlchemy engine.

    Args:
        database_url: SQLAlchemy database URL

    Returns:
        Configured SQLAlchemy engine
    """
    is_sqlite = database_url.startswith("sqlite")

    if is_sqlite:
        # Ensure database directory exists
        db_path = get_db_path(database_url)
        if db_path is not None:
            db_path.parent.mkdir(parents=True, exist_ok=True)

        engine = create_engine(
            database_url,
            connect_args={
                "check_same_thread": False,  # Writes happen in worker threads
                "timeout": 30,
            },
            echo=False,
        )

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            """Use WAL so CLI readers do not block the daemon's writes."""
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()
    else:
        engine = create_engine(database_url, pool_pre_ping=True, pool_recycle=3600, echo=False)

    logger.debug(f"Database engine initialized: {database_url}")
    return engine


def get_session_maker(engine: Engine) -> sessionmaker:
    """Create a session maker bound to an engine."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


@contextmanager
def get_db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Get a database session context manager.

    Usage:
        with get_db_session(session_factory) as session:
            run = session.query(OperationRunRecord).first()

    Yields:
        SQLAlchemy Session, committed on success and rolled back on error
    """
    session = session_factory()

    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_tables(engine: Engine) -> None:
    """Create all database tables that do not exist yet."""
    from pulse_cli.database.models import Base

    Base.metadata.create_all(bind=engine)
    logger.debug("Database tables created")
