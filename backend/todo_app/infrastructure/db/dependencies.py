"""
Dependency Injection Providers for Todo Premium

Provides FastAPI dependencies for database sessions and repositories.
"""

from typing import Annotated, AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from todo_app.infrastructure.db.database import get_db_manager, get_session
from todo_app.infrastructure.db.repositories import (
    EntitlementRepository,
    TodoRepository,
)


# Type alias for session dependency
SessionDep = Annotated[AsyncSession, Depends(get_session)]


async def get_todo_repository(
    session: SessionDep,
) -> AsyncGenerator[TodoRepository, None]:
    """
    Dependency provider for TodoRepository.

    Usage:
        @router.get("/todos")
        async def list_todos(repo: TodoRepoDep):
            ...
    """
    yield TodoRepository(session)


def get_entitlement_repository() -> EntitlementRepository:
    """
    Dependency provider for EntitlementRepository.

    The repository opens its own short sessions, so it only needs the
    shared session factory rather than the request session.
    """
    return EntitlementRepository(get_db_manager().session_factory)


# Type aliases for repository dependencies
TodoRepoDep = Annotated[TodoRepository, Depends(get_todo_repository)]
EntitlementRepoDep = Annotated[
    EntitlementRepository,
    Depends(get_entitlement_repository)
]
