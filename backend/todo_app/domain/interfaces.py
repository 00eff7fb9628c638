"""
Billing Provider Interface

The narrow surface the application needs from the payment provider.
Services receive an implementation through dependency injection; tests
substitute mocks.
"""

from dataclasses import dataclass
from typing import Any, Optional, Protocol

from todo_app.domain.billing_events import CheckoutSessionPayload, SubscriptionPayload
from todo_app.domain.entitlement import CheckoutPaymentType


@dataclass(frozen=True)
class CheckoutSessionRequest:
    user_id: str
    billing_account_id: str
    payment_type: CheckoutPaymentType
    amount_cents: int
    currency: str
    success_url: str
    cancel_url: str


@dataclass(frozen=True)
class CheckoutSessionCreated:
    session_id: str
    url: str


class BillingProvider(Protocol):
    def verify_event(self, payload: bytes, signature: Optional[str]) -> Any:
        ...

    async def retrieve_checkout_session(self, session_id: str) -> CheckoutSessionPayload:
        ...

    async def retrieve_subscription(self, subscription_id: str) -> SubscriptionPayload:
        ...

    async def get_or_create_customer(
        self,
        user_id: str,
        email: str,
        existing_customer_id: Optional[str] = None,
    ) -> str:
        ...

    async def create_checkout_session(
        self, request: CheckoutSessionRequest
    ) -> CheckoutSessionCreated:
        ...

    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        ...

    async def cancel_subscription(self, subscription_id: str) -> SubscriptionPayload:
        ...

    async def update_subscription(
        self, subscription_id: str, cancel_at_period_end: bool
    ) -> SubscriptionPayload:
        ...
