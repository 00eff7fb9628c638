"""
Test configuration and fixtures for Todo Premium.

Provides shared fixtures for unit and API tests.
"""

import os

# Settings are read once at import time; pin a test configuration first.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("AUTH_JWT_SECRET", "test-jwt-secret-with-at-least-32-bytes!")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("FRONTEND_URL", "http://localhost:3000")

import time
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from todo_app.config.settings import get_settings
from todo_app.domain.billing_events import CheckoutSessionPayload, SubscriptionPayload
from todo_app.domain.interfaces import CheckoutSessionCreated
from todo_app.infrastructure.db.models import BillingAccountModel, EntitlementModel, Todo  # noqa: F401
from todo_app.infrastructure.db.repositories import EntitlementRepository


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def app():
    """Get the FastAPI application with clean dependency overrides."""
    from todo_app.main import app
    app.dependency_overrides.clear()
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """Get synchronous test client."""
    return TestClient(app, raise_server_exceptions=False)


# =============================================================================
# Identity Fixtures
# =============================================================================

@pytest.fixture
def make_token():
    """Issue HS256 tokens signed with the configured test secret."""
    def _make(user_id: str = "user-1", email: str = "user1@example.com", expires_in: int = 3600):
        payload = {"sub": user_id, "exp": int(time.time()) + expires_in}
        if email:
            payload["email"] = email
        return jwt.encode(payload, get_settings().auth_jwt_secret, algorithm="HS256")
    return _make


@pytest.fixture
def auth_headers(make_token):
    return {"Authorization": f"Bearer {make_token()}"}


# =============================================================================
# Database Fixtures
# =============================================================================

class FakeClock:
    """Deterministic clock; each test advances it explicitly."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: int = 60) -> datetime:
        self.current = self.current + timedelta(seconds=seconds)
        return self.current


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
async def engine():
    """In-memory SQLite shared across sessions of a single test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def entitlement_repo(session_factory, clock) -> EntitlementRepository:
    return EntitlementRepository(session_factory, clock=clock)


# =============================================================================
# Billing Provider Fixtures
# =============================================================================

@pytest.fixture
def mock_provider():
    """BillingProvider double; async methods are AsyncMocks."""
    provider = MagicMock()
    provider.verify_event = MagicMock()
    provider.retrieve_checkout_session = AsyncMock()
    provider.retrieve_subscription = AsyncMock(
        return_value=SubscriptionPayload(
            id="sub_1",
            billing_account_id="cus_1",
            status="active",
            cancel_at_period_end=False,
            current_period_end=datetime(2026, 2, 1, tzinfo=timezone.utc),
        )
    )
    provider.get_or_create_customer = AsyncMock(return_value="cus_1")
    provider.create_checkout_session = AsyncMock(
        return_value=CheckoutSessionCreated(
            session_id="cs_1", url="https://checkout.stripe.com/c/pay/cs_1"
        )
    )
    provider.create_portal_session = AsyncMock(
        return_value="https://billing.stripe.com/p/session/test"
    )
    provider.cancel_subscription = AsyncMock()
    provider.update_subscription = AsyncMock(
        return_value=SubscriptionPayload(
            id="sub_1",
            billing_account_id="cus_1",
            status="active",
            cancel_at_period_end=True,
            current_period_end=datetime(2026, 2, 1, tzinfo=timezone.utc),
        )
    )
    return provider


@pytest.fixture
def paid_recurring_session():
    return CheckoutSessionPayload(
        id="cs_1",
        billing_account_id="cus_1",
        mode="subscription",
        payment_status="paid",
        subscription_id="sub_1",
        user_id="u1",
    )


@pytest.fixture
def paid_one_time_session():
    return CheckoutSessionPayload(
        id="cs_2",
        billing_account_id="cus_1",
        mode="payment",
        payment_status="paid",
        user_id="u1",
    )
