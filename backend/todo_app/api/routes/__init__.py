# API Routes Module
from todo_app.api.routes import (
    subscriptions,
    todos,
    webhooks,
)

__all__ = [
    "subscriptions",
    "todos",
    "webhooks",
]
