"""
Stripe Billing Provider

Infrastructure adapter for Stripe payment processing.
Handles checkout sessions, customer management, billing portal,
subscription changes and webhook signature verification.

Conventions:
- Hosted Checkout with inline price data (no dashboard products)
- Customer Portal for payment method and invoice management
- Webhook signatures are always verified outside emulator mode
"""

import asyncio
import json
import logging
from typing import Any, Callable, Optional

import stripe
from stripe import StripeError

from todo_app.domain.billing_events import CheckoutSessionPayload, SubscriptionPayload
from todo_app.domain.entitlement import CheckoutPaymentType
from todo_app.domain.interfaces import CheckoutSessionCreated, CheckoutSessionRequest
from todo_app.infrastructure.exceptions import (
    BillingProviderError,
    ConfigurationError,
    SignatureVerificationError,
    ValidationError,
)


logger = logging.getLogger(__name__)


class StripeBillingProvider:
    """
    Stripe implementation of the BillingProvider interface.

    Holds its own ``stripe.StripeClient``; nothing here touches the
    module-level ``stripe.api_key``. Built once per process by the DI
    provider in ``api.dependencies``.
    """

    def __init__(
        self,
        api_key: Optional[str],
        webhook_secret: Optional[str] = None,
        *,
        allow_unsigned_events: bool = False,
        api_version: Optional[str] = None,
        webhook_tolerance: int = 300,
        client: Optional[stripe.StripeClient] = None,
    ):
        self._webhook_secret = webhook_secret
        self._allow_unsigned_events = allow_unsigned_events
        self._webhook_tolerance = webhook_tolerance

        if client is not None:
            self._client = client
        elif api_key:
            self._client = stripe.StripeClient(api_key, stripe_version=api_version)
        else:
            self._client = None

    @property
    def client(self) -> stripe.StripeClient:
        if self._client is None:
            raise ConfigurationError(
                "Stripe secret key is not configured",
                missing_keys=["STRIPE_SECRET_KEY"],
            )
        return self._client

    async def _call(self, operation: str, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """Run a blocking SDK call off the event loop and normalize errors."""
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except StripeError as e:
            logger.error(f"Stripe {operation} failed: {e}")
            raise BillingProviderError(
                f"Stripe {operation} failed: {e}",
                operation=operation,
                user_message=e.user_message,
                original_error=e,
            )

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_event(self, payload: bytes, signature: Optional[str]) -> Any:
        """
        Verify webhook signature and decode the event body.

        Args:
            payload: Raw request body
            signature: Stripe-Signature header

        Returns:
            Decoded event as a plain dict

        Raises:
            SignatureVerificationError: missing or invalid signature
            ConfigurationError: no secret and not in emulator mode
            ValidationError: body is not JSON
        """
        if self._webhook_secret and not signature:
            raise SignatureVerificationError("Missing Stripe signature")

        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        except UnicodeDecodeError as e:
            if self._webhook_secret:
                raise SignatureVerificationError("Invalid signature: body is not UTF-8", original_error=e)
            raise ValidationError(f"Invalid webhook payload: {e}", original_error=e)

        if self._webhook_secret:
            try:
                stripe.WebhookSignature.verify_header(
                    body,
                    signature,
                    self._webhook_secret,
                    self._webhook_tolerance,
                )
            except stripe.SignatureVerificationError as e:
                raise SignatureVerificationError(f"Invalid signature: {e}", original_error=e)

        elif self._allow_unsigned_events:
            logger.warning("Webhook secret not configured, skipping signature verification (emulator mode)")

        else:
            raise ConfigurationError(
                "Stripe webhook secret is not configured",
                missing_keys=["STRIPE_WEBHOOK_SECRET"],
            )

        try:
            return json.loads(body)
        except ValueError as e:
            raise ValidationError(f"Invalid webhook payload: {e}", original_error=e)

    # =========================================================================
    # Queries
    # =========================================================================

    async def retrieve_checkout_session(self, session_id: str) -> CheckoutSessionPayload:
        session = await self._call(
            "checkout session retrieval",
            self.client.checkout.sessions.retrieve,
            session_id,
        )
        return CheckoutSessionPayload.from_provider(session)

    async def retrieve_subscription(self, subscription_id: str) -> SubscriptionPayload:
        subscription = await self._call(
            "subscription retrieval",
            self.client.subscriptions.retrieve,
            subscription_id,
        )
        return SubscriptionPayload.from_provider(subscription)

    # =========================================================================
    # Customer Management
    # =========================================================================

    async def get_or_create_customer(
        self,
        user_id: str,
        email: str,
        existing_customer_id: Optional[str] = None,
    ) -> str:
        """
        Return the existing customer id if it is still live, else create one.

        Args:
            user_id: Internal user ID (stored in metadata)
            email: Customer email for receipts
            existing_customer_id: Customer id from the user's entitlement
        """
        if existing_customer_id:
            try:
                customer = await self._call(
                    "customer retrieval",
                    self.client.customers.retrieve,
                    existing_customer_id,
                )
                if not getattr(customer, "deleted", False):
                    return existing_customer_id
            except BillingProviderError:
                logger.warning(f"Customer {existing_customer_id} not found, creating new")

        customer = await self._call(
            "customer creation",
            self.client.customers.create,
            params={
                "email": email,
                "metadata": {"user_id": user_id},
            },
        )
        logger.info(f"Created Stripe customer {customer.id} for user {user_id}")
        return customer.id

    # =========================================================================
    # Checkout Session
    # =========================================================================

    async def create_checkout_session(
        self, request: CheckoutSessionRequest
    ) -> CheckoutSessionCreated:
        """
        Create a hosted Checkout Session for the premium plan.

        Monthly purchases run in subscription mode; one-time purchases in
        payment mode. The user id travels in metadata so the completion
        event can be mapped back without the reverse index.
        """
        recurring = request.payment_type == CheckoutPaymentType.MONTHLY
        price_data: dict = {
            "currency": request.currency,
            "product_data": {
                "name": "Premium Plan",
                "description": "Unlimited todos",
            },
            "unit_amount": request.amount_cents,
        }
        if recurring:
            price_data["recurring"] = {"interval": "month"}

        params: dict = {
            "customer": request.billing_account_id,
            "mode": "subscription" if recurring else "payment",
            "payment_method_types": ["card"],
            "line_items": [{"price_data": price_data, "quantity": 1}],
            "success_url": request.success_url,
            "cancel_url": request.cancel_url,
            "metadata": {
                "user_id": request.user_id,
                "payment_type": request.payment_type.value,
            },
        }
        if recurring:
            params["subscription_data"] = {"metadata": {"user_id": request.user_id}}
        else:
            params["payment_intent_data"] = {"metadata": {"user_id": request.user_id}}

        session = await self._call(
            "checkout session creation",
            self.client.checkout.sessions.create,
            params=params,
        )
        logger.info(
            f"Created checkout session {session.id} for user {request.user_id}, "
            f"payment_type={request.payment_type.value}"
        )
        return CheckoutSessionCreated(session_id=session.id, url=session.url)

    # =========================================================================
    # Customer Portal
    # =========================================================================

    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        session = await self._call(
            "portal session creation",
            self.client.billing_portal.sessions.create,
            params={"customer": customer_id, "return_url": return_url},
        )
        logger.info(f"Created portal session for customer {customer_id}")
        return session.url

    # =========================================================================
    # Subscription Changes
    # =========================================================================

    async def cancel_subscription(self, subscription_id: str) -> SubscriptionPayload:
        subscription = await self._call(
            "subscription cancellation",
            self.client.subscriptions.cancel,
            subscription_id,
        )
        logger.info(f"Cancelled subscription {subscription_id} immediately")
        return SubscriptionPayload.from_provider(subscription)

    async def update_subscription(
        self, subscription_id: str, cancel_at_period_end: bool
    ) -> SubscriptionPayload:
        subscription = await self._call(
            "subscription update",
            self.client.subscriptions.update,
            subscription_id,
            params={"cancel_at_period_end": cancel_at_period_end},
        )
        logger.info(
            f"Updated subscription {subscription_id}, "
            f"cancel_at_period_end={cancel_at_period_end}"
        )
        return SubscriptionPayload.from_provider(subscription)
