"""
Database session management with SQLAlchemy 2.0.

Engines and session factories are built explicitly from a database URL and
handed to the jobs; nothing here holds a process-wide connection.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.exc import SQLAlchemyError
from loguru import logger

from feedbackloop.utils.errors import DatabaseError


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine with pooling settings suited to batch jobs.

    SQLite (used for local runs and tests) does not accept the pool and
    connect options used for PostgreSQL, so they only apply to server URLs.
    """
    if database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo)

    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=5,
        max_overflow=5,
        pool_timeout=30,
        pool_recycle=1800,
        echo=echo,
        connect_args={
            "connect_timeout": 10,
            "options": "-c statement_timeout=60000",
        },
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create a session factory bound to `engine`."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        expire_on_commit=False,  # Prevent lazy load issues after commit
    )


def init_db(engine: Engine) -> None:
    """Initialize database schema (create all tables).

    Note: This is idempotent - it only creates tables/indexes that don't exist.
    """
    from feedbackloop.db.models import Base

    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database schema initialized successfully")
    except SQLAlchemyError as e:
        raise DatabaseError(f"Schema initialization failed: {e}")


@contextmanager
def get_db_context(
    session_factory: sessionmaker,
) -> Generator[Session, None, None]:
    """
    Get a database session as a context manager.

    Usage:
        with get_db_context(session_factory) as db:
            FamilyBiasLearner(db, salt=settings.anonymization_salt).run()

    Yields:
        SQLAlchemy session instance

    Anything left pending is committed on success and rolled back on error.
    """
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Database session failed: {e}")
        raise
    finally:
        db.close()


def build_session_factory(database_url: str, echo: bool = False, create_schema: bool = True) -> sessionmaker:
    """Engine, optional schema bootstrap, and session factory in one step."""
    engine = create_db_engine(database_url, echo=echo)
    if create_schema:
        init_db(engine)
    return create_session_factory(engine)
