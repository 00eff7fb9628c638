"""
Repository Layer for Todo Premium

Exports all repository classes for dependency injection.
"""

from todo_app.infrastructure.db.repositories.base_repository import BaseRepository
from todo_app.infrastructure.db.repositories.entitlement_repository import (
    EntitlementRepository,
)
from todo_app.infrastructure.db.repositories.todo_repository import TodoRepository


__all__ = [
    # Base
    "BaseRepository",
    # Repositories
    "EntitlementRepository",
    "TodoRepository",
]
