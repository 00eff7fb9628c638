"""
API tests for the subscription endpoints.

Services are replaced through FastAPI dependency overrides; the real JWT
dependency authenticates the caller.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from todo_app.api.dependencies import get_checkout_service, get_reconciliation_service
from todo_app.domain.entitlement import (
    CheckoutPaymentType,
    SubscriptionStatusResponse,
    SubscriptionTier,
    VerifyCheckoutResult,
)
from todo_app.domain.interfaces import CheckoutSessionCreated
from todo_app.infrastructure.exceptions import BillingProviderError, NotFoundError
from todo_app.infrastructure.services.checkout_service import CheckoutUser


NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def checkout_service(app):
    service = MagicMock()
    service.get_subscription_status = AsyncMock(
        return_value=SubscriptionStatusResponse(
            tier=SubscriptionTier.FREE,
            is_premium=False,
            max_todos=10,
            created_at=NOW,
            updated_at=NOW,
        )
    )
    service.create_checkout_session = AsyncMock(
        return_value=CheckoutSessionCreated(session_id="cs_1", url="https://checkout.stripe.com/c/pay/cs_1")
    )
    service.create_portal_session = AsyncMock(return_value="https://billing.stripe.com/p/session/x")
    service.cancel_subscription = AsyncMock(return_value=None)
    app.dependency_overrides[get_checkout_service] = lambda: service
    return service


@pytest.fixture
def reconciliation(app):
    service = MagicMock()
    service.verify_checkout_session = AsyncMock(
        return_value=VerifyCheckoutResult(success=True, subscription_updated=True)
    )
    app.dependency_overrides[get_reconciliation_service] = lambda: service
    return service


class TestAuthentication:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/api/subscriptions/status"),
            ("post", "/api/subscriptions/checkout"),
            ("post", "/api/subscriptions/portal"),
            ("post", "/api/subscriptions/verify"),
            ("post", "/api/subscriptions/cancel"),
        ],
    )
    def test_requires_token(self, client, checkout_service, reconciliation, method, path):
        response = getattr(client, method)(path)

        assert response.status_code == 401


class TestStatus:

    def test_status_for_free_user(self, client, auth_headers, checkout_service):
        response = client.get("/api/subscriptions/status", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["tier"] == "FREE"
        assert body["is_premium"] is False
        assert body["max_todos"] == 10
        checkout_service.get_subscription_status.assert_awaited_once_with("user-1")


class TestCheckout:

    def test_create_monthly_checkout(self, client, auth_headers, checkout_service):
        response = client.post(
            "/api/subscriptions/checkout", json={"payment_type": "monthly"}, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json() == {
            "checkout_url": "https://checkout.stripe.com/c/pay/cs_1",
            "session_id": "cs_1",
        }
        checkout_service.create_checkout_session.assert_awaited_once_with(
            CheckoutUser(user_id="user-1", email="user1@example.com"),
            CheckoutPaymentType.MONTHLY,
        )

    def test_invalid_payment_type(self, client, auth_headers, checkout_service):
        response = client.post(
            "/api/subscriptions/checkout", json={"payment_type": "weekly"}, headers=auth_headers
        )

        assert response.status_code == 422

    def test_provider_failure_is_502(self, client, auth_headers, checkout_service):
        checkout_service.create_checkout_session.side_effect = BillingProviderError(
            "Stripe checkout session creation failed: card_declined",
            user_message="Your card was declined.",
        )

        response = client.post(
            "/api/subscriptions/checkout", json={"payment_type": "one-time"}, headers=auth_headers
        )

        assert response.status_code == 502
        assert response.json()["message"] == "Your card was declined."


class TestVerify:

    def test_verify_checkout(self, client, auth_headers, reconciliation):
        response = client.post(
            "/api/subscriptions/verify", json={"session_id": "cs_1"}, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "error": None, "subscription_updated": True}
        reconciliation.verify_checkout_session.assert_awaited_once_with("user-1", "cs_1")

    def test_verify_requires_session_id(self, client, auth_headers, reconciliation):
        response = client.post("/api/subscriptions/verify", json={"session_id": ""}, headers=auth_headers)

        assert response.status_code == 422


class TestPortalAndCancel:

    def test_portal(self, client, auth_headers, checkout_service):
        response = client.post("/api/subscriptions/portal", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"portal_url": "https://billing.stripe.com/p/session/x"}

    def test_portal_without_billing_account(self, client, auth_headers, checkout_service):
        checkout_service.create_portal_session.side_effect = NotFoundError(
            "No billing account found. Please subscribe first."
        )

        response = client.post("/api/subscriptions/portal", headers=auth_headers)

        assert response.status_code == 404

    def test_cancel_at_period_end_by_default(self, client, auth_headers, checkout_service):
        response = client.post("/api/subscriptions/cancel", json={}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["success"] is True
        checkout_service.cancel_subscription.assert_awaited_once_with("user-1", immediate=False)

    def test_cancel_immediately(self, client, auth_headers, checkout_service):
        response = client.post("/api/subscriptions/cancel", json={"immediate": True}, headers=auth_headers)

        assert response.status_code == 200
        checkout_service.cancel_subscription.assert_awaited_once_with("user-1", immediate=True)
