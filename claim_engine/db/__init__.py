"""
Database module for the claim engine.

Exports database connection utilities.
"""

from claim_engine.db.connection import (
    check_db_connection,
    close_db_connection,
    create_tables,
    get_engine,
    get_session,
    get_session_maker,
)

__all__ = [
    "get_engine",
    "get_session_maker",
    "get_session",
    "create_tables",
    "close_db_connection",
    "check_db_connection",
]
