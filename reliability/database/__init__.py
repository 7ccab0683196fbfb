# Database package
from reliability.database.engine import (
    Base,
    build_engine,
    build_session_factory,
    session_scope,
    check_database_connection,
    init_database,
    close_database,
)

__all__ = [
    "Base",
    "build_engine",
    "build_session_factory",
    "session_scope",
    "check_database_connection",
    "init_database",
    "close_database",
]
