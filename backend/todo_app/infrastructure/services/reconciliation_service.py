"""
Subscription Reconciliation Service

Keeps each user's entitlement consistent with the billing provider.

Two triggers apply the same updates:
- the provider's webhook events (authoritative, asynchronous, may arrive
  late, twice, or out of order)
- the client's post-checkout verification call (synchronous fallback for
  when the webhook has not landed yet, or never will in local dev)

Neither path locks or waits for the other. Every write is an idempotent
merge through EntitlementRepository.upsert, so running either path first,
second, or both leaves the same committed record.
"""

import logging
from typing import Optional

from pydantic import BaseModel

from todo_app.domain.billing_events import (
    BillingEvent,
    CheckoutCompleted,
    CheckoutSessionPayload,
    OneTimePaymentSucceeded,
    SubscriptionChanged,
    SubscriptionRemoved,
)
from todo_app.domain.entitlement import (
    READ_ERROR_POLICY,
    Entitlement,
    EntitlementStatus,
    EntitlementUpdate,
    PaymentType,
    ReadErrorPolicy,
    SubscriptionTier,
    VerifyCheckoutResult,
    map_provider_status,
)
from todo_app.domain.interfaces import BillingProvider
from todo_app.infrastructure.db.repositories.entitlement_repository import (
    EntitlementRepository,
)
from todo_app.infrastructure.exceptions import (
    BillingProviderError,
    DatabaseError,
    EntitlementWriteError,
)


logger = logging.getLogger(__name__)


ACTIVE_PROVIDER_STATUSES = ("active", "trialing")


class ReconciliationOutcome(BaseModel):
    """What handling a single event did."""
    kind: str
    handled: bool = True
    dropped: bool = False
    user_id: Optional[str] = None
    tier: Optional[SubscriptionTier] = None

    @property
    def status(self) -> str:
        if self.dropped:
            return "dropped"
        return "success" if self.handled else "ignored"


class ReconciliationService:
    """
    Applies billing-provider state to entitlements.

    Args:
        entitlements: entitlement store (sole writer of both tables)
        provider: billing provider used for enrichment reads
    """

    def __init__(self, entitlements: EntitlementRepository, provider: BillingProvider):
        self._entitlements = entitlements
        self._provider = provider

    # =========================================================================
    # Event Dispatch
    # =========================================================================

    async def handle_event(self, event: BillingEvent) -> ReconciliationOutcome:
        """
        Apply one verified provider event.

        Raises:
            EntitlementWriteError: the primary write failed; the caller must
                report failure so the provider redelivers
            DatabaseError: the reverse index could not be read
        """
        if isinstance(event, CheckoutCompleted):
            return await self._on_checkout_completed(event)
        if isinstance(event, SubscriptionChanged):
            return await self._on_subscription_changed(event)
        if isinstance(event, SubscriptionRemoved):
            return await self._on_subscription_removed(event)
        if isinstance(event, OneTimePaymentSucceeded):
            return await self._on_one_time_payment(event)

        logger.info(f"Unhandled billing event type: {event.event_type} ({event.event_id})")
        return ReconciliationOutcome(kind=event.kind, handled=False)

    async def _resolve_user(
        self,
        user_id: Optional[str],
        billing_account_id: Optional[str],
    ) -> Optional[str]:
        """Metadata wins; otherwise look the billing account up in the index."""
        if user_id:
            return user_id
        if not billing_account_id:
            return None
        return await self._entitlements.get_user_id_by_billing_account(billing_account_id)

    def _dropped(self, kind: str, reason: str) -> ReconciliationOutcome:
        logger.error(f"Dropping {kind} event: {reason}")
        return ReconciliationOutcome(kind=kind, dropped=True)

    async def _commit(self, user_id: str, update: EntitlementUpdate) -> None:
        result = await self._entitlements.upsert(user_id, update)
        if not result.success:
            raise EntitlementWriteError(
                f"Failed to update subscription: {result.error}",
                user_id=user_id,
            )

    # =========================================================================
    # Checkout Completed (shared with the verification fallback)
    # =========================================================================

    async def _on_checkout_completed(self, event: CheckoutCompleted) -> ReconciliationOutcome:
        session = event.session
        logger.info(
            f"Processing checkout completion: session={session.id}, "
            f"user_id={session.user_id}, customer={session.billing_account_id}, "
            f"payment_status={session.payment_status}, mode={session.mode}"
        )

        if not session.billing_account_id:
            return self._dropped(event.kind, f"no customer id in checkout session {session.id}")

        user_id = await self._resolve_user(session.user_id, session.billing_account_id)
        if not user_id:
            return self._dropped(
                event.kind, f"could not find user for customer {session.billing_account_id}"
            )

        await self.apply_checkout(user_id, session)
        return ReconciliationOutcome(
            kind=event.kind, user_id=user_id, tier=SubscriptionTier.PREMIUM
        )

    async def apply_checkout(self, user_id: str, session: CheckoutSessionPayload) -> None:
        """
        Grant PREMIUM for a completed checkout.

        The tier write is primary and raises on failure. For recurring
        checkouts a follow-up read of the subscription fills in its id, status,
        period end and cancel flag; that enrichment is best effort because the
        tier is already committed.
        """
        await self._commit(
            user_id,
            EntitlementUpdate(
                tier=SubscriptionTier.PREMIUM,
                billing_account_id=session.billing_account_id,
                payment_type=session.payment_type,
                status=EntitlementStatus.ACTIVE,
                cancel_at_period_end=False,
            ),
        )
        logger.info(f"Subscription updated to PREMIUM for user {user_id}")

        if session.is_recurring and session.subscription_id:
            await self._enrich_from_subscription(user_id, session.subscription_id)

    async def _enrich_from_subscription(self, user_id: str, subscription_id: str) -> None:
        try:
            subscription = await self._provider.retrieve_subscription(subscription_id)
        except BillingProviderError as e:
            logger.warning(
                f"Could not retrieve subscription {subscription_id} for user {user_id}, "
                f"keeping PREMIUM without details: {e}"
            )
            return

        result = await self._entitlements.upsert(
            user_id,
            EntitlementUpdate(
                billing_subscription_id=subscription.id,
                status=map_provider_status(subscription.status),
                current_period_end=subscription.current_period_end,
                cancel_at_period_end=subscription.cancel_at_period_end,
            ),
        )
        if not result.success:
            logger.error(f"Failed to update subscription details for user {user_id}: {result.error}")
        else:
            logger.info(f"Subscription details updated for user {user_id}")

    # =========================================================================
    # Subscription Changed / Removed
    # =========================================================================

    async def _on_subscription_changed(self, event: SubscriptionChanged) -> ReconciliationOutcome:
        subscription = event.subscription
        user_id = await self._resolve_user(subscription.user_id, subscription.billing_account_id)
        if not user_id:
            return self._dropped(
                event.kind, f"could not find user for customer {subscription.billing_account_id}"
            )

        is_active = subscription.status in ACTIVE_PROVIDER_STATUSES
        is_immediately_canceled = (
            subscription.status == "canceled" and not subscription.cancel_at_period_end
        )
        should_be_premium = is_active and not is_immediately_canceled
        tier = SubscriptionTier.PREMIUM if should_be_premium else SubscriptionTier.FREE

        previous = await self._read_for_logging(user_id)

        fields = dict(
            tier=tier,
            billing_subscription_id=subscription.id,
            payment_type=PaymentType.RECURRING,
            status=map_provider_status(subscription.status),
            current_period_end=subscription.current_period_end,
            cancel_at_period_end=subscription.cancel_at_period_end,
        )
        if subscription.billing_account_id:
            fields["billing_account_id"] = subscription.billing_account_id
        await self._commit(user_id, EntitlementUpdate(**fields))

        self._log_transition(user_id, previous, subscription.cancel_at_period_end, tier, is_immediately_canceled)
        return ReconciliationOutcome(kind=event.kind, user_id=user_id, tier=tier)

    async def _read_for_logging(self, user_id: str) -> Optional[Entitlement]:
        try:
            return await self._entitlements.get(user_id)
        except DatabaseError:
            return None

    def _log_transition(
        self,
        user_id: str,
        previous: Optional[Entitlement],
        cancel_at_period_end: bool,
        tier: SubscriptionTier,
        is_immediately_canceled: bool,
    ) -> None:
        was_canceled = previous is not None and previous.cancel_at_period_end

        if was_canceled and not cancel_at_period_end and tier == SubscriptionTier.PREMIUM:
            logger.info(f"Subscription reactivated for user {user_id}")
        elif not was_canceled and cancel_at_period_end:
            logger.info(
                f"Subscription set to cancel at period end for user {user_id}, "
                "remains PREMIUM until then"
            )
        elif is_immediately_canceled:
            logger.info(f"Subscription canceled immediately, downgraded to FREE for user {user_id}")
        else:
            logger.info(f"Subscription synced for user {user_id}: tier={tier.value}")

    async def _on_subscription_removed(self, event: SubscriptionRemoved) -> ReconciliationOutcome:
        subscription = event.subscription
        user_id = await self._resolve_user(subscription.user_id, subscription.billing_account_id)
        if not user_id:
            return self._dropped(
                event.kind, f"could not find user for customer {subscription.billing_account_id}"
            )

        fields = dict(
            tier=SubscriptionTier.FREE,
            status=EntitlementStatus.CANCELED,
            current_period_end=None,
            cancel_at_period_end=False,
        )
        if subscription.billing_account_id:
            fields["billing_account_id"] = subscription.billing_account_id
        await self._commit(user_id, EntitlementUpdate(**fields))

        logger.info(f"Subscription removed, downgraded to FREE for user {user_id}")
        return ReconciliationOutcome(kind=event.kind, user_id=user_id, tier=SubscriptionTier.FREE)

    # =========================================================================
    # One-time Payment
    # =========================================================================

    async def _on_one_time_payment(self, event: OneTimePaymentSucceeded) -> ReconciliationOutcome:
        payment = event.payment
        if not payment.billing_account_id:
            return self._dropped(event.kind, f"no customer id in payment {payment.id}")

        user_id = await self._resolve_user(payment.user_id, payment.billing_account_id)
        if not user_id:
            return self._dropped(
                event.kind, f"could not find user for customer {payment.billing_account_id}"
            )

        await self._commit(
            user_id,
            EntitlementUpdate(
                tier=SubscriptionTier.PREMIUM,
                billing_account_id=payment.billing_account_id,
                payment_type=PaymentType.ONE_TIME,
                status=EntitlementStatus.ACTIVE,
                cancel_at_period_end=False,
            ),
        )
        logger.info(f"Lifetime PREMIUM granted from payment {payment.id} for user {user_id}")
        return ReconciliationOutcome(kind=event.kind, user_id=user_id, tier=SubscriptionTier.PREMIUM)

    # =========================================================================
    # Client Verification Fallback
    # =========================================================================

    async def verify_checkout_session(self, user_id: str, session_id: str) -> VerifyCheckoutResult:
        """
        Confirm a checkout right after the hosted-checkout redirect.

        If the session is paid and the webhook has not upgraded the user
        yet, apply the same checkout update directly.
        """
        try:
            session = await self._provider.retrieve_checkout_session(session_id)
        except BillingProviderError as e:
            logger.error(f"Error verifying checkout session {session_id}: {e}")
            return VerifyCheckoutResult(success=False, error=e.user_message)

        if session.user_id and session.user_id != user_id:
            logger.warning(
                f"User {user_id} tried to verify checkout session {session_id} "
                f"belonging to {session.user_id}"
            )
            return VerifyCheckoutResult(
                success=False, error="Checkout session does not belong to this user"
            )

        if not session.is_paid:
            return VerifyCheckoutResult(success=False, error="Payment not completed")

        try:
            current = await self._entitlements.get(user_id)
        except DatabaseError as e:
            if READ_ERROR_POLICY == ReadErrorPolicy.DENY:
                return VerifyCheckoutResult(success=False, error=e.message)
            logger.warning(f"Entitlement read failed for user {user_id}, applying checkout anyway")
            current = None

        if current and current.is_premium:
            logger.info(f"User {user_id} already PREMIUM, webhook processed checkout {session_id}")
            return VerifyCheckoutResult(success=True, subscription_updated=False)

        if not session.billing_account_id:
            logger.error(f"No customer id in paid checkout session {session_id}")
            return VerifyCheckoutResult(
                success=True,
                error=(
                    "Payment successful but customer ID not found. "
                    "Webhook should update your subscription shortly."
                ),
                subscription_updated=False,
            )

        logger.info(
            f"Updating subscription via verification fallback: user={user_id}, "
            f"customer={session.billing_account_id}, mode={session.mode}"
        )
        try:
            await self.apply_checkout(user_id, session)
        except EntitlementWriteError as e:
            logger.error(f"Verification fallback failed for user {user_id}: {e}")
            return VerifyCheckoutResult(
                success=True,
                error=(
                    f"Payment successful but subscription update failed: {e.message}. "
                    "Please contact support."
                ),
                subscription_updated=False,
            )

        return VerifyCheckoutResult(success=True, subscription_updated=True)
