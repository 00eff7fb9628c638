"""
Stripe Webhook Handler

Receives Stripe events for the subscription lifecycle and hands them to
the reconciliation service.

Handled events:
- checkout.session.completed: grant PREMIUM after payment
- customer.subscription.updated: sync tier, status and grace period
- customer.subscription.deleted: downgrade to FREE
- payment_intent.succeeded: grant lifetime PREMIUM (one-time purchases)

Redelivered and out-of-order events are safe: every write is an
idempotent merge. A failed write answers 500 so Stripe retries.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from todo_app.api.dependencies import get_billing_provider, get_reconciliation_service
from todo_app.domain.billing_events import parse_billing_event
from todo_app.domain.interfaces import BillingProvider
from todo_app.infrastructure.exceptions import SignatureVerificationError
from todo_app.infrastructure.services.reconciliation_service import ReconciliationService


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    provider: BillingProvider = Depends(get_billing_provider),
    reconciliation: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    Handle Stripe webhook events.

    Returns 200 once the event is applied, ignored, or dropped because no
    user could be resolved. Signature failures answer 400 and change
    nothing.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    try:
        raw_event = provider.verify_event(payload, signature)
    except SignatureVerificationError as e:
        logger.error(f"Webhook signature verification failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.message,
        )

    event = parse_billing_event(raw_event)
    logger.info(f"Processing webhook event: {event.kind} ({event.event_id})")

    outcome = await reconciliation.handle_event(event)

    return {"status": outcome.status, "event_id": event.event_id}
