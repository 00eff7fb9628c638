"""
Checkout Service

User-initiated billing operations: starting a hosted checkout, opening
the customer portal, cancelling a subscription and reading the current
subscription status.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from todo_app.config.settings import Settings
from todo_app.domain.entitlement import (
    CheckoutPaymentType,
    EntitlementStatus,
    EntitlementUpdate,
    OperationResult,
    SubscriptionStatusResponse,
    SubscriptionTier,
    get_max_todos,
    map_provider_status,
)
from todo_app.domain.interfaces import (
    BillingProvider,
    CheckoutSessionCreated,
    CheckoutSessionRequest,
)
from todo_app.infrastructure.db.repositories.entitlement_repository import (
    EntitlementRepository,
)
from todo_app.infrastructure.exceptions import (
    EntitlementWriteError,
    NotFoundError,
    ValidationError,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutUser:
    """The identity fields checkout needs."""
    user_id: str
    email: Optional[str]


class CheckoutService:
    """
    Orchestrates checkout, portal and cancellation against the provider.

    Entitlement writes go through ``EntitlementRepository.upsert`` like
    every other writer, so the reverse index stays in step with the
    customer id handed to the provider.
    """

    def __init__(
        self,
        entitlements: EntitlementRepository,
        provider: BillingProvider,
        settings: Settings,
    ):
        self._entitlements = entitlements
        self._provider = provider
        self._settings = settings

    @property
    def settings_url(self) -> str:
        return f"{self._settings.frontend_url.rstrip('/')}/settings"

    def _amount_for(self, payment_type: CheckoutPaymentType) -> int:
        if payment_type == CheckoutPaymentType.MONTHLY:
            return self._settings.premium_monthly_amount_cents
        return self._settings.premium_lifetime_amount_cents

    async def _write(self, user_id: str, update: EntitlementUpdate) -> None:
        result: OperationResult = await self._entitlements.upsert(user_id, update)
        if not result.success:
            raise EntitlementWriteError(
                f"Failed to update subscription: {result.error}",
                user_id=user_id,
            )

    # =========================================================================
    # Checkout
    # =========================================================================

    async def create_checkout_session(
        self,
        user: CheckoutUser,
        payment_type: CheckoutPaymentType,
    ) -> CheckoutSessionCreated:
        """
        Start a hosted checkout for the premium plan.

        Raises:
            ValidationError: the caller has no email on record
            BillingProviderError: the provider rejected a call
        """
        if not user.email:
            raise ValidationError("An email address is required to start checkout")

        entitlement = await self._entitlements.get_or_default(user.user_id)

        customer_id = await self._provider.get_or_create_customer(
            user_id=user.user_id,
            email=user.email,
            existing_customer_id=entitlement.billing_account_id,
        )

        if customer_id != entitlement.billing_account_id:
            await self._write(
                user.user_id, EntitlementUpdate(billing_account_id=customer_id)
            )

        return await self._provider.create_checkout_session(
            CheckoutSessionRequest(
                user_id=user.user_id,
                billing_account_id=customer_id,
                payment_type=payment_type,
                amount_cents=self._amount_for(payment_type),
                currency=self._settings.billing_currency,
                success_url=f"{self.settings_url}?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{self.settings_url}?canceled=true",
            )
        )

    # =========================================================================
    # Portal
    # =========================================================================

    async def create_portal_session(self, user_id: str) -> str:
        """
        Open the provider's self-service billing portal.

        Raises:
            NotFoundError: the user never went through checkout
        """
        entitlement = await self._entitlements.get(user_id)
        if not entitlement or not entitlement.billing_account_id:
            raise NotFoundError(
                "No billing account found. Please subscribe first.",
                operation="create_portal_session",
                table="entitlements",
            )

        return await self._provider.create_portal_session(
            customer_id=entitlement.billing_account_id,
            return_url=self.settings_url,
        )

    # =========================================================================
    # Cancellation
    # =========================================================================

    async def cancel_subscription(self, user_id: str, immediate: bool = False) -> None:
        """
        Cancel the user's premium access.

        Without a live recurring subscription (lifetime purchase, or the
        subscription already ended) the entitlement is downgraded locally.
        Otherwise the provider is told to cancel now or at period end and
        the local record mirrors it; the provider's follow-up events
        converge to the same state.
        """
        entitlement = await self._entitlements.get_or_default(user_id)
        subscription_id = entitlement.billing_subscription_id

        if not subscription_id or entitlement.status == EntitlementStatus.CANCELED:
            logger.info(f"No active subscription for user {user_id}, downgrading to FREE")
            await self._write(
                user_id,
                EntitlementUpdate(
                    tier=SubscriptionTier.FREE,
                    current_period_end=None,
                    cancel_at_period_end=False,
                ),
            )
            return

        if immediate:
            await self._provider.cancel_subscription(subscription_id)
            await self._write(
                user_id,
                EntitlementUpdate(
                    tier=SubscriptionTier.FREE,
                    status=EntitlementStatus.CANCELED,
                    current_period_end=None,
                    cancel_at_period_end=False,
                ),
            )
            logger.info(f"Subscription {subscription_id} canceled immediately for user {user_id}")
        else:
            subscription = await self._provider.update_subscription(
                subscription_id, cancel_at_period_end=True
            )
            await self._write(
                user_id,
                EntitlementUpdate(
                    status=map_provider_status(subscription.status),
                    current_period_end=(
                        subscription.current_period_end or entitlement.current_period_end
                    ),
                    cancel_at_period_end=subscription.cancel_at_period_end,
                ),
            )
            logger.info(f"Subscription {subscription_id} set to cancel at period end for user {user_id}")

    # =========================================================================
    # Status
    # =========================================================================

    async def get_subscription_status(self, user_id: str) -> SubscriptionStatusResponse:
        entitlement = await self._entitlements.get_or_default(user_id)
        return SubscriptionStatusResponse(
            tier=entitlement.tier,
            is_premium=entitlement.is_premium,
            status=entitlement.status,
            payment_type=entitlement.payment_type,
            current_period_end=entitlement.current_period_end,
            cancel_at_period_end=entitlement.cancel_at_period_end,
            max_todos=get_max_todos(entitlement.tier),
            created_at=entitlement.created_at,
            updated_at=entitlement.updated_at,
        )
