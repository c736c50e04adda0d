"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults
- Test database support (SQLite in-memory)
- Table definitions for profiles and the usage ledger
"""
import logging
from typing import Optional
from contextlib import contextmanager
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Float, Index, text
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func
import os

from resume_ninja.core.config import settings
from resume_ninja.core.logging import scrub


# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
_SessionLocal = None
_schema_ready = False


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return settings.DATABASE_URL


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal, _schema_ready

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if url.startswith("sqlite"):
        # Single shared connection so in-memory databases survive across sessions
        _engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=False,
        )
    else:
        _engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            pool_pre_ping=True,
            echo=False,  # Set to True for SQL query logging
        )

    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )
    _schema_ready = False

    return _engine


def dispose_engine() -> None:
    """Dispose the current engine (tests switch databases between cases)."""
    global _engine, _SessionLocal, _schema_ready
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None
    _schema_ready = False


def is_configured() -> bool:
    """True when an engine exists or a database URL is available to build one."""
    return _engine is not None or bool(get_database_url())


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.execute(...)
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


def ensure_schema() -> None:
    """
    Create tables once per engine.

    Called at startup and lazily before the first ledger or profile access,
    so a fresh database works without a separate migration step.
    """
    global _schema_ready
    if _schema_ready:
        return
    create_all_tables()
    _schema_ready = True


def check_connection() -> bool:
    """
    Check if database connection is available.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logging.getLogger("resume_ninja").warning(f"Database connection check failed: {scrub(e)}")
        return False


# ============================================================================
# TABLE DEFINITIONS
# ============================================================================

# Profiles mirror the identity provider's users; this service only reads them
profiles = Table(
    'profiles',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('email', String(320), nullable=True),
    Column('subscription_tier', String(50), nullable=False, server_default='free'),
    Column('created_at', DateTime(timezone=True), nullable=False, server_default=func.now()),
)

# Append-only ledger: one row per billable action or credit grant
usage_events = Table(
    'usage_events',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False),
    Column('kind', String(50), nullable=False),
    Column('occurred_at', DateTime(timezone=True), nullable=False),
    Column('score_value', Float, nullable=True),
    # Credits added; credit_grant rows only
    Column('amount', Integer, nullable=True),
    Index('idx_usage_events_user_occurred', 'user_id', 'occurred_at'),
)
