"""
Database Package.

SQLAlchemy base and session management shared by the decision
log, the rule store and the execution audit tables.
"""

from .engine import (
    Base,
    DatabasePersistenceError,
    create_all_tables,
    create_database_engine,
    get_database_url,
    get_engine,
    get_session_factory,
    transaction_scope,
)

__all__ = [
    "Base",
    "DatabasePersistenceError",
    "create_all_tables",
    "create_database_engine",
    "get_database_url",
    "get_engine",
    "get_session_factory",
    "transaction_scope",
]
