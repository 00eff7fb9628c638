"""
Todo API Routes

Per-user todo CRUD. Creation is gated by the caller's tier.
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status

from todo_app.api.dependencies import get_current_user_id, get_usage_service
from todo_app.infrastructure.db.dependencies import TodoRepoDep
from todo_app.infrastructure.db.models.todo import TodoCreate, TodoRead, TodoUpdate
from todo_app.infrastructure.exceptions import NotFoundError
from todo_app.infrastructure.services.usage_service import TodoLimit, UsageService


logger = logging.getLogger(__name__)

router = APIRouter()


def _not_found(todo_id: UUID) -> NotFoundError:
    return NotFoundError(f"Todo {todo_id} not found", operation="get", table="todos")


@router.get("/todos", response_model=List[TodoRead])
async def list_todos(
    repo: TodoRepoDep,
    user_id: str = Depends(get_current_user_id),
):
    """List the caller's todos, newest first."""
    return await repo.list_for_user(user_id)


@router.get("/todos/limit", response_model=TodoLimit)
async def get_todo_limit(
    user_id: str = Depends(get_current_user_id),
    usage: UsageService = Depends(get_usage_service),
):
    return await usage.check_todo_limit(user_id)


@router.post("/todos", response_model=TodoRead, status_code=status.HTTP_201_CREATED)
async def create_todo(
    data: TodoCreate,
    repo: TodoRepoDep,
    user_id: str = Depends(get_current_user_id),
    usage: UsageService = Depends(get_usage_service),
):
    """
    Create a todo.

    Raises:
        UsageLimitError: the caller is at their tier's limit (HTTP 402)
    """
    await usage.ensure_can_create(user_id)
    return await repo.create_for_user(user_id, data)


@router.patch("/todos/{todo_id}", response_model=TodoRead)
async def update_todo(
    todo_id: UUID,
    data: TodoUpdate,
    repo: TodoRepoDep,
    user_id: str = Depends(get_current_user_id),
):
    todo = await repo.update_for_user(user_id, todo_id, data)
    if todo is None:
        raise _not_found(todo_id)
    return todo


@router.delete("/todos/{todo_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_todo(
    todo_id: UUID,
    repo: TodoRepoDep,
    user_id: str = Depends(get_current_user_id),
):
    if not await repo.delete_for_user(user_id, todo_id):
        raise _not_found(todo_id)


@router.delete("/todos")
async def delete_all_todos(
    repo: TodoRepoDep,
    user_id: str = Depends(get_current_user_id),
):
    """Remove every todo of the caller (account cleanup)."""
    deleted = await repo.delete_all(user_id)
    return {"deleted": deleted}
