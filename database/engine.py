"""
Database Persistence Layer - Core Engine.

============================================================
PURPOSE
============================================================
Declarative base, engine and session management for the
decision log, rule store and execution audit tables.

- SQLAlchemy 2.0 ORM
- Explicit transaction management
- URL from environment (DATABASE_URL), local SQLite fallback
- Hard failures on persistence errors (callers that must not
  fail catch and log at their own boundary)

============================================================
"""

import os
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Generator, Optional

from dotenv import load_dotenv
from sqlalchemy import DateTime, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


DEFAULT_DATABASE_URL = "sqlite:///options_trading.db"


# =============================================================
# DECLARATIVE BASE
# =============================================================

class Base(DeclarativeBase):
    """Declarative base for every ORM model in the trading core."""

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


# =============================================================
# CUSTOM EXCEPTIONS
# =============================================================

class DatabasePersistenceError(Exception):
    """Raised when database persistence fails."""
    pass


# =============================================================
# DATABASE ENGINE
# =============================================================

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


def get_database_url() -> str:
    """Get database URL from environment."""
    url = os.getenv("DATABASE_URL")
    if not url:
        url = DEFAULT_DATABASE_URL
        logger.warning(f"DATABASE_URL not set, using default: {url}")
    return url


def create_database_engine(url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Create a SQLAlchemy engine.

    Args:
        url: Database URL (defaults to environment)
        echo: Log SQL statements

    Returns:
        SQLAlchemy Engine
    """
    database_url = url or get_database_url()
    logger.info(f"Creating database engine for: {database_url.split('@')[-1]}")

    engine = create_engine(database_url, echo=echo, future=True)

    @event.listens_for(engine, "connect")
    def on_connect(dbapi_conn, connection_record):
        logger.debug("Database connection established")

    return engine


def get_engine() -> Engine:
    """Get the process-wide engine, creating it if necessary."""
    global _engine
    if _engine is None:
        _engine = create_database_engine()
    return _engine


def get_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    """
    Get a session factory.

    With an explicit engine a fresh factory is returned; without
    one the process-wide factory is created on first use.
    """
    global _SessionFactory

    if engine is not None:
        return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    if _SessionFactory is None:
        _SessionFactory = sessionmaker(
            bind=get_engine(),
            autoflush=False,
            expire_on_commit=False,
        )
    return _SessionFactory


# =============================================================
# SESSION MANAGEMENT
# =============================================================

@contextmanager
def transaction_scope(
    session_factory: Optional[sessionmaker] = None,
) -> Generator[Session, None, None]:
    """
    Context manager for explicit transaction boundaries.

    Commits only if no exception occurs. Rolls back on ANY exception
    and re-raises SQLAlchemy failures as DatabasePersistenceError.

    Usage:
        with transaction_scope(factory) as session:
            session.add(record)
    """
    session = (session_factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        logger.error(f"Database transaction failed, rolling back: {e}")
        session.rollback()
        raise DatabasePersistenceError(f"Transaction failed: {e}") from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# =============================================================
# DATABASE INITIALIZATION
# =============================================================

def create_all_tables(engine: Optional[Engine] = None) -> None:
    """
    Create every table registered on Base.

    Importing the model modules registers their tables.
    """
    from decision_engine import models as _decision_models  # noqa: F401
    from risk_rules import models as _rule_models  # noqa: F401
    from execution_engine import models as _execution_models  # noqa: F401

    target = engine or get_engine()
    try:
        Base.metadata.create_all(bind=target)
        logger.info("Database tables created successfully")
    except SQLAlchemyError as e:
        logger.error(f"Failed to create database tables: {e}")
        raise DatabasePersistenceError(f"Table creation failed: {e}") from e


__all__ = [
    "Base",
    "DEFAULT_DATABASE_URL",
    "DatabasePersistenceError",
    "create_all_tables",
    "create_database_engine",
    "get_database_url",
    "get_engine",
    "get_session_factory",
    "transaction_scope",
]
