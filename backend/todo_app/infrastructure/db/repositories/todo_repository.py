"""
Todo Repository for Todo Premium

Per-user todo collection: ordered listing, counting and batch delete.
Every query is scoped by user_id; a todo owned by someone else is
indistinguishable from a missing one.
"""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from todo_app.infrastructure.db.models.todo import Todo, TodoCreate, TodoUpdate
from todo_app.infrastructure.db.repositories.base_repository import BaseRepository


logger = logging.getLogger(__name__)


class TodoRepository(BaseRepository[Todo, TodoCreate, TodoUpdate]):
    """Repository for todo CRUD."""

    def __init__(self, session: AsyncSession):
        super().__init__(Todo, session)

    async def count(self, user_id: str) -> int:
        """Number of todos the user currently has."""
        return await self.count_where(Todo.user_id == user_id)

    async def list_for_user(self, user_id: str) -> List[Todo]:
        """All todos for a user, newest first."""
        return await self.list_where(
            Todo.user_id == user_id,
            order_by=Todo.created_at.desc(),
        )

    async def get_for_user(self, user_id: str, todo_id: UUID) -> Optional[Todo]:
        todo = await self.get_by_id(todo_id)
        if todo is None or todo.user_id != user_id:
            return None
        return todo

    async def create_for_user(self, user_id: str, data: TodoCreate) -> Todo:
        todo = await self.create(data, user_id=user_id, completed=False)
        logger.info(f"Created todo {todo.id} for user {user_id}")
        return todo

    async def update_for_user(
        self, user_id: str, todo_id: UUID, data: TodoUpdate
    ) -> Optional[Todo]:
        todo = await self.get_for_user(user_id, todo_id)
        if todo is None:
            return None
        return await self.update(todo, data)

    async def delete_for_user(self, user_id: str, todo_id: UUID) -> bool:
        todo = await self.get_for_user(user_id, todo_id)
        if todo is None:
            return False
        await self.delete(todo)
        return True

    async def delete_all(self, user_id: str) -> int:
        """Batch delete every todo of a user. Returns the number removed."""
        result = await self.session.execute(
            delete(Todo).where(Todo.user_id == user_id)
        )
        await self.session.flush()
        logger.info(f"Deleted {result.rowcount} todos for user {user_id}")
        return result.rowcount
