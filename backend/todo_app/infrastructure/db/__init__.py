"""
Database Infrastructure Package for Todo Premium

Exports database utilities.
"""

from todo_app.infrastructure.db.database import (
    DatabaseManager,
    get_db_manager,
    get_session,
    init_db,
    close_db,
)


__all__ = [
    "DatabaseManager",
    "get_db_manager",
    "get_session",
    "init_db",
    "close_db",
]
