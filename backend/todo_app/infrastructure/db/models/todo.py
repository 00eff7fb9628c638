"""
Todo SQLModel for Todo Premium

Database model for per-user todo items plus the create/update/read schemas.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, DateTime


class TodoBase(SQLModel):
    """Fields shared between create/update/read."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)


class Todo(TodoBase, table=True):
    """Maps to the 'todos' table."""

    __tablename__ = "todos"

    id: UUID = Field(default_factory=uuid4, primary_key=True, nullable=False)
    user_id: str = Field(index=True, max_length=128)
    completed: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )


class TodoCreate(TodoBase):
    """Schema for creating a todo."""
    pass


class TodoUpdate(SQLModel):
    """Schema for updating a todo (all fields optional)."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    completed: Optional[bool] = None


class TodoRead(TodoBase):
    """Schema returned by the API."""

    id: UUID
    completed: bool
    created_at: datetime
