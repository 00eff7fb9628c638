"""
SQLModel ORM Models for Todo Premium

Exports all database models for Alembic autogenerate and application use.
Import models here to register them with SQLModel.metadata.
"""

from todo_app.infrastructure.db.models.entitlement import (
    EntitlementModel,
    BillingAccountModel,
)
from todo_app.infrastructure.db.models.todo import (
    Todo,
    TodoBase,
    TodoCreate,
    TodoUpdate,
    TodoRead,
)


__all__ = [
    # Entitlements
    "EntitlementModel",
    "BillingAccountModel",
    # Todos
    "Todo",
    "TodoBase",
    "TodoCreate",
    "TodoUpdate",
    "TodoRead",
]
