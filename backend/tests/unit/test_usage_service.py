"""
Unit tests for the todo usage gate and the todo repository it reads.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from todo_app.domain.entitlement import EntitlementUpdate, ReadErrorPolicy, SubscriptionTier
from todo_app.infrastructure.db.models.todo import TodoCreate, TodoUpdate
from todo_app.infrastructure.db.repositories import TodoRepository
from todo_app.infrastructure.exceptions import DatabaseError, UsageLimitError
from todo_app.infrastructure.services import usage_service
from todo_app.infrastructure.services.usage_service import UsageService


@pytest.fixture
def todo_repo(session):
    return TodoRepository(session)


@pytest.fixture
def usage(entitlement_repo, todo_repo):
    return UsageService(entitlement_repo, todo_repo)


async def _add_todos(todo_repo, user_id, count):
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    for i in range(count):
        await todo_repo.create(
            TodoCreate(title=f"todo {i}"),
            user_id=user_id,
            created_at=base + timedelta(minutes=i),
        )
    await todo_repo.session.commit()


class TestTodoRepository:

    async def test_list_is_newest_first_and_scoped(self, todo_repo):
        await _add_todos(todo_repo, "u1", 3)
        await _add_todos(todo_repo, "u2", 1)

        todos = await todo_repo.list_for_user("u1")

        assert [t.title for t in todos] == ["todo 2", "todo 1", "todo 0"]
        assert await todo_repo.count("u1") == 3

    async def test_update_and_delete_respect_owner(self, todo_repo):
        todo = await todo_repo.create_for_user("u1", TodoCreate(title="Buy milk"))

        assert await todo_repo.update_for_user("u2", todo.id, TodoUpdate(completed=True)) is None
        assert await todo_repo.delete_for_user("u2", todo.id) is False

        updated = await todo_repo.update_for_user("u1", todo.id, TodoUpdate(completed=True))
        assert updated.completed is True
        assert updated.title == "Buy milk"
        assert await todo_repo.delete_for_user("u1", todo.id) is True

    async def test_delete_all(self, todo_repo):
        await _add_todos(todo_repo, "u1", 4)
        await _add_todos(todo_repo, "u2", 2)

        assert await todo_repo.delete_all("u1") == 4
        assert await todo_repo.count("u1") == 0
        assert await todo_repo.count("u2") == 2


class TestCheckTodoLimit:

    async def test_free_user_under_limit(self, usage, todo_repo):
        await _add_todos(todo_repo, "u1", 9)

        limit = await usage.check_todo_limit("u1")

        assert limit.can_create is True
        assert limit.current_count == 9
        assert limit.max_count == 10

    async def test_free_user_at_limit(self, usage, todo_repo):
        await _add_todos(todo_repo, "u1", 10)

        limit = await usage.check_todo_limit("u1")

        assert limit.can_create is False
        assert limit.max_count == 10
        assert "limit of 10 todos" in limit.error

    async def test_premium_user_is_unlimited(self, usage, entitlement_repo, todo_repo):
        await entitlement_repo.upsert("u1", EntitlementUpdate(tier=SubscriptionTier.PREMIUM))
        await _add_todos(todo_repo, "u1", 12)

        limit = await usage.check_todo_limit("u1")

        assert limit.can_create is True
        assert limit.max_count is None

    async def test_entitlement_read_error_allows_creation(self, todo_repo):
        await _add_todos(todo_repo, "u1", 15)
        entitlements = MagicMock()
        entitlements.get_or_default = AsyncMock(side_effect=DatabaseError("connection lost"))

        limit = await UsageService(entitlements, todo_repo).check_todo_limit("u1")

        assert limit.can_create is True
        assert limit.current_count == 15
        assert limit.max_count is None

    async def test_todo_count_read_error_allows_creation(self, entitlement_repo):
        todos = MagicMock()
        todos.count = AsyncMock(side_effect=OperationalError("SELECT count", {}, Exception("db down")))

        limit = await UsageService(entitlement_repo, todos).check_todo_limit("u1")

        assert limit.can_create is True
        assert limit.current_count == 0
        assert limit.max_count is None

    async def test_todo_count_read_error_under_deny_policy(self, entitlement_repo, monkeypatch):
        monkeypatch.setattr(usage_service, "READ_ERROR_POLICY", ReadErrorPolicy.DENY)
        todos = MagicMock()
        todos.count = AsyncMock(side_effect=OperationalError("SELECT count", {}, Exception("db down")))

        with pytest.raises(DatabaseError):
            await UsageService(entitlement_repo, todos).check_todo_limit("u1")

    async def test_ensure_can_create_raises_at_limit(self, usage, todo_repo):
        await _add_todos(todo_repo, "u1", 10)

        with pytest.raises(UsageLimitError) as exc_info:
            await usage.ensure_can_create("u1")

        assert exc_info.value.details == {"current_count": 10, "max_count": 10}
