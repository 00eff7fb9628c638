"""
Subscription API Routes

REST API endpoints for subscription management.
Errors are raised as application exceptions and mapped to HTTP responses
by the handlers registered in main.py.
"""

import logging

from fastapi import APIRouter, Depends

from todo_app.api.dependencies import (
    AuthenticatedUser,
    get_checkout_service,
    get_current_user,
    get_current_user_id,
    get_reconciliation_service,
)
from todo_app.domain.entitlement import (
    CancelSubscriptionRequest,
    CheckoutResponse,
    CreateCheckoutRequest,
    OperationResult,
    PortalResponse,
    SubscriptionStatusResponse,
    VerifyCheckoutRequest,
    VerifyCheckoutResult,
)
from todo_app.infrastructure.services.checkout_service import CheckoutService, CheckoutUser
from todo_app.infrastructure.services.reconciliation_service import ReconciliationService


logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Subscription Status Endpoints
# =============================================================================

@router.get("/subscriptions/status", response_model=SubscriptionStatusResponse)
async def get_subscription_status(
    user_id: str = Depends(get_current_user_id),
    service: CheckoutService = Depends(get_checkout_service),
):
    """
    Get the current user's subscription status.

    Users without a record are reported as FREE; nothing is written.
    """
    return await service.get_subscription_status(user_id)


# =============================================================================
# Checkout Endpoints
# =============================================================================

@router.post("/subscriptions/checkout", response_model=CheckoutResponse)
async def create_checkout_session(
    request: CreateCheckoutRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: CheckoutService = Depends(get_checkout_service),
):
    """
    Create a Stripe Checkout session for the premium plan.

    Returns:
        CheckoutResponse with checkout URL and session ID
    """
    session = await service.create_checkout_session(
        CheckoutUser(user_id=user.user_id, email=user.email),
        request.payment_type,
    )
    logger.info(f"Created checkout session {session.session_id} for user {user.user_id}")

    return CheckoutResponse(checkout_url=session.url, session_id=session.session_id)


@router.post("/subscriptions/verify", response_model=VerifyCheckoutResult)
async def verify_checkout_session(
    request: VerifyCheckoutRequest,
    user_id: str = Depends(get_current_user_id),
    reconciliation: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    Confirm a checkout after the redirect back from Stripe.

    Applies the checkout directly when the webhook has not landed yet.
    """
    return await reconciliation.verify_checkout_session(user_id, request.session_id)


# =============================================================================
# Portal Endpoints
# =============================================================================

@router.post("/subscriptions/portal", response_model=PortalResponse)
async def create_portal_session(
    user_id: str = Depends(get_current_user_id),
    service: CheckoutService = Depends(get_checkout_service),
):
    """
    Create a Stripe Customer Portal session.

    Allows customers to manage their subscription:
    - Update payment method
    - Cancel subscription
    - View invoices
    """
    portal_url = await service.create_portal_session(user_id)
    return PortalResponse(portal_url=portal_url)


# =============================================================================
# Cancellation Endpoints
# =============================================================================

@router.post("/subscriptions/cancel", response_model=OperationResult)
async def cancel_subscription(
    request: CancelSubscriptionRequest,
    user_id: str = Depends(get_current_user_id),
    service: CheckoutService = Depends(get_checkout_service),
):
    """
    Cancel the current subscription, immediately or at period end.

    Users may downgrade at any time, even above the free limit; they just
    cannot create new todos until they are back under it.
    """
    await service.cancel_subscription(user_id, immediate=request.immediate)
    return OperationResult(success=True)
