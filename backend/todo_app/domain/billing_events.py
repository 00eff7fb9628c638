"""
Billing Event Domain Models

Typed view of the billing provider's webhook events. The provider sends
loosely-shaped JSON; everything downstream of ``parse_billing_event`` works
with one of the variants of ``BillingEvent`` and never touches raw payloads.

Handled provider event types:
- checkout.session.completed     -> CheckoutCompleted
- customer.subscription.updated  -> SubscriptionChanged
- customer.subscription.deleted  -> SubscriptionRemoved
- payment_intent.succeeded       -> OneTimePaymentSucceeded
Everything else becomes UnhandledEvent, which is a no-op.
"""

from datetime import datetime, timezone
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel

from todo_app.domain.entitlement import PaymentType
from todo_app.infrastructure.exceptions import ValidationError


def _field(obj: Any, key: str) -> Any:
    """Read a key from a plain dict or a provider SDK object."""
    if obj is None:
        return None
    try:
        return obj[key]
    except (KeyError, IndexError, TypeError):
        return None


def _object_id(value: Any) -> Optional[str]:
    """Provider references are either an id string or an expanded object."""
    if value is None or isinstance(value, str):
        return value or None
    return _field(value, "id")


def _timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _metadata_user_id(obj: Any) -> Optional[str]:
    return _field(_field(obj, "metadata"), "user_id") or None


# =============================================================================
# Payloads
# =============================================================================

class CheckoutSessionPayload(BaseModel):
    """Hosted checkout session."""
    id: str
    billing_account_id: Optional[str] = None
    mode: Optional[str] = None
    payment_status: Optional[str] = None
    subscription_id: Optional[str] = None
    user_id: Optional[str] = None

    @property
    def is_recurring(self) -> bool:
        return self.mode == "subscription"

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"

    @property
    def payment_type(self) -> PaymentType:
        return PaymentType.RECURRING if self.is_recurring else PaymentType.ONE_TIME

    @classmethod
    def from_provider(cls, obj: Any) -> "CheckoutSessionPayload":
        return cls(
            id=_field(obj, "id"),
            billing_account_id=_object_id(_field(obj, "customer")),
            mode=_field(obj, "mode"),
            payment_status=_field(obj, "payment_status"),
            subscription_id=_object_id(_field(obj, "subscription")),
            user_id=_metadata_user_id(obj),
        )


class SubscriptionPayload(BaseModel):
    """Recurring-billing object. ``status`` is the raw provider status."""
    id: str
    billing_account_id: Optional[str] = None
    status: Optional[str] = None
    cancel_at_period_end: bool = False
    current_period_end: Optional[datetime] = None
    user_id: Optional[str] = None

    @classmethod
    def from_provider(cls, obj: Any) -> "SubscriptionPayload":
        period_end = _field(obj, "current_period_end")
        if period_end is None:
            # Newer API versions only expose the period on subscription items
            items = _field(_field(obj, "items"), "data") or []
            if items:
                period_end = _field(items[0], "current_period_end")

        return cls(
            id=_field(obj, "id"),
            billing_account_id=_object_id(_field(obj, "customer")),
            status=_field(obj, "status"),
            cancel_at_period_end=bool(_field(obj, "cancel_at_period_end")),
            current_period_end=_timestamp(period_end),
            user_id=_metadata_user_id(obj),
        )


class PaymentIntentPayload(BaseModel):
    """Successful one-time payment."""
    id: str
    billing_account_id: Optional[str] = None
    user_id: Optional[str] = None

    @classmethod
    def from_provider(cls, obj: Any) -> "PaymentIntentPayload":
        return cls(
            id=_field(obj, "id"),
            billing_account_id=_object_id(_field(obj, "customer")),
            user_id=_metadata_user_id(obj),
        )


# =============================================================================
# Event Variants
# =============================================================================

class CheckoutCompleted(BaseModel):
    kind: Literal["checkout_completed"] = "checkout_completed"
    event_id: Optional[str] = None
    session: CheckoutSessionPayload


class SubscriptionChanged(BaseModel):
    kind: Literal["subscription_changed"] = "subscription_changed"
    event_id: Optional[str] = None
    subscription: SubscriptionPayload


class SubscriptionRemoved(BaseModel):
    kind: Literal["subscription_removed"] = "subscription_removed"
    event_id: Optional[str] = None
    subscription: SubscriptionPayload


class OneTimePaymentSucceeded(BaseModel):
    kind: Literal["one_time_payment_succeeded"] = "one_time_payment_succeeded"
    event_id: Optional[str] = None
    payment: PaymentIntentPayload


class UnhandledEvent(BaseModel):
    kind: Literal["unhandled"] = "unhandled"
    event_id: Optional[str] = None
    event_type: Optional[str] = None


BillingEvent = Union[
    CheckoutCompleted,
    SubscriptionChanged,
    SubscriptionRemoved,
    OneTimePaymentSucceeded,
    UnhandledEvent,
]


def parse_billing_event(raw: Any) -> BillingEvent:
    """
    Classify a verified provider event into a typed variant.

    Raises:
        ValidationError: a handled event type without a usable data object
    """
    event_type = _field(raw, "type")
    event_id = _field(raw, "id")
    obj = _field(_field(raw, "data"), "object")

    if event_type not in _PARSERS:
        return UnhandledEvent(event_id=event_id, event_type=event_type)

    if obj is None or not _field(obj, "id"):
        raise ValidationError(
            f"Event {event_id} ({event_type}) has no data object",
            details={"event_type": event_type},
        )

    # Invoice payments of a subscription also emit payment_intent.succeeded;
    # those are reconciled through the subscription events instead.
    if event_type == "payment_intent.succeeded" and _field(obj, "invoice"):
        return UnhandledEvent(event_id=event_id, event_type=event_type)

    return _PARSERS[event_type](event_id, obj)


_PARSERS = {
    "checkout.session.completed": lambda event_id, obj: CheckoutCompleted(
        event_id=event_id, session=CheckoutSessionPayload.from_provider(obj)
    ),
    "customer.subscription.updated": lambda event_id, obj: SubscriptionChanged(
        event_id=event_id, subscription=SubscriptionPayload.from_provider(obj)
    ),
    "customer.subscription.deleted": lambda event_id, obj: SubscriptionRemoved(
        event_id=event_id, subscription=SubscriptionPayload.from_provider(obj)
    ),
    "payment_intent.succeeded": lambda event_id, obj: OneTimePaymentSucceeded(
        event_id=event_id, payment=PaymentIntentPayload.from_provider(obj)
    ),
}
