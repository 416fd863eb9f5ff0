"""
Persistence layer: SQLAlchemy engine/session, ORM tables, repository functions.
"""

from chainpulse.database.connection import (
    Base,
    get_database_url,
    init_db,
    reset_engine_for_test,
    session_scope,
)

__all__ = [
    "Base",
    "get_database_url",
    "init_db",
    "reset_engine_for_test",
    "session_scope",
]
