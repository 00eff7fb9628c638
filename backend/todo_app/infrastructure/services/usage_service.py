"""
Usage Service

Decides whether a user may create another todo, from their todo count
and entitlement tier.
"""

import logging
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from todo_app.domain.entitlement import (
    READ_ERROR_POLICY,
    ReadErrorPolicy,
    SubscriptionTier,
    get_max_todos,
)
from todo_app.infrastructure.db.repositories.entitlement_repository import (
    EntitlementRepository,
)
from todo_app.infrastructure.db.repositories.todo_repository import TodoRepository
from todo_app.infrastructure.exceptions import DatabaseError, UsageLimitError


logger = logging.getLogger(__name__)


class TodoLimit(BaseModel):
    can_create: bool
    current_count: int
    max_count: Optional[int] = None  # None means unlimited
    error: Optional[str] = None


class UsageService:
    def __init__(self, entitlements: EntitlementRepository, todos: TodoRepository):
        self._entitlements = entitlements
        self._todos = todos

    async def check_todo_limit(self, user_id: str) -> TodoLimit:
        """
        Compute the creation-limit decision for a user.

        A failed read of either the todo count or the entitlement is
        resolved by READ_ERROR_POLICY; with ALLOW the user may create and
        no limit is reported.
        """
        try:
            current_count = await self._todos.count(user_id)
        except (SQLAlchemyError, DatabaseError) as e:
            logger.error(f"Error counting todos for user {user_id}: {e}")
            if READ_ERROR_POLICY == ReadErrorPolicy.ALLOW:
                return TodoLimit(can_create=True, current_count=0)
            raise DatabaseError(f"Failed to count todos: {e}", operation="count", original_error=e)

        try:
            entitlement = await self._entitlements.get_or_default(user_id)
            tier = entitlement.tier
        except DatabaseError as e:
            logger.error(f"Error checking todo limit for user {user_id}: {e}")
            if READ_ERROR_POLICY == ReadErrorPolicy.ALLOW:
                return TodoLimit(can_create=True, current_count=current_count)
            tier = SubscriptionTier.FREE

        max_count = get_max_todos(tier)
        if max_count is None or current_count < max_count:
            return TodoLimit(can_create=True, current_count=current_count, max_count=max_count)

        return TodoLimit(
            can_create=False,
            current_count=current_count,
            max_count=max_count,
            error=(
                f"You've reached your limit of {max_count} todos. "
                "Please upgrade to create more."
            ),
        )

    async def ensure_can_create(self, user_id: str) -> TodoLimit:
        """
        Raises:
            UsageLimitError: the user is at their tier's limit
        """
        limit = await self.check_todo_limit(user_id)
        if not limit.can_create:
            raise UsageLimitError(
                limit.error,
                current_count=limit.current_count,
                max_count=limit.max_count,
            )
        return limit
