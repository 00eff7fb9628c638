"""
Entitlement Domain Models

Domain models for the subscription entitlement bounded context.
Enums, DTOs, and domain entities shared by the reconciliation engine,
the checkout flow and the usage gate.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class SubscriptionTier(str, Enum):
    """Access tier. PREMIUM is the authoritative access flag."""
    FREE = "FREE"
    PREMIUM = "PREMIUM"


class PaymentType(str, Enum):
    """How PREMIUM was obtained."""
    ONE_TIME = "one-time"
    RECURRING = "recurring"


class EntitlementStatus(str, Enum):
    """Status mirrored from the billing provider (informational)."""
    ACTIVE = "active"
    CANCELED = "canceled"
    PAST_DUE = "past_due"
    TRIALING = "trialing"
    UNPAID = "unpaid"


class CheckoutPaymentType(str, Enum):
    """What the user picked on the pricing screen."""
    MONTHLY = "monthly"
    ONE_TIME = "one-time"


class ReadErrorPolicy(str, Enum):
    """What to do when an entitlement read fails."""
    ALLOW = "allow"
    DENY = "deny"


# A failed entitlement read never takes access away. With ALLOW the usage
# gate lets the item be created and the checkout verification proceeds to
# write the paid entitlement.
READ_ERROR_POLICY = ReadErrorPolicy.ALLOW


# =============================================================================
# Domain Entities
# =============================================================================

class Entitlement(BaseModel):
    """Per-user entitlement record."""
    user_id: str
    tier: SubscriptionTier = SubscriptionTier.FREE
    billing_account_id: Optional[str] = None
    billing_subscription_id: Optional[str] = None
    payment_type: Optional[PaymentType] = None
    status: Optional[EntitlementStatus] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_premium(self) -> bool:
        return self.tier == SubscriptionTier.PREMIUM

    @classmethod
    def default(cls, user_id: str, now: datetime) -> "Entitlement":
        """Fresh FREE entitlement used when no record exists yet."""
        return cls(user_id=user_id, created_at=now, updated_at=now)


class EntitlementUpdate(BaseModel):
    """
    Partial entitlement update.

    Only fields that were explicitly passed are merged
    (``model_dump(exclude_unset=True)``). An explicit ``None`` is a real
    value: ``current_period_end=None`` clears the period end.
    """
    tier: Optional[SubscriptionTier] = None
    billing_account_id: Optional[str] = None
    billing_subscription_id: Optional[str] = None
    payment_type: Optional[PaymentType] = None
    status: Optional[EntitlementStatus] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: Optional[bool] = None

    def changes(self) -> dict:
        """Fields to merge over the stored record."""
        return self.model_dump(exclude_unset=True)


class OperationResult(BaseModel):
    """Outcome of a write the caller must inspect rather than catch."""
    success: bool
    error: Optional[str] = None


class VerifyCheckoutResult(BaseModel):
    """Outcome of the post-redirect checkout verification."""
    success: bool
    error: Optional[str] = None
    subscription_updated: bool = False


# =============================================================================
# Provider Status Mapping
# =============================================================================

PROVIDER_STATUS_MAP = {
    "active": EntitlementStatus.ACTIVE,
    "canceled": EntitlementStatus.CANCELED,
    "past_due": EntitlementStatus.PAST_DUE,
    "trialing": EntitlementStatus.TRIALING,
    "unpaid": EntitlementStatus.UNPAID,
    "incomplete": EntitlementStatus.ACTIVE,
    "incomplete_expired": EntitlementStatus.CANCELED,
    "paused": EntitlementStatus.ACTIVE,
}


def map_provider_status(provider_status: Optional[str]) -> EntitlementStatus:
    """
    Map a provider subscription status to the stored status.

    Unknown values map to ACTIVE. This fail-open bias (together with
    ``incomplete`` and ``paused`` mapping to ACTIVE) is pending product
    confirmation and must not be tightened silently.
    """
    return PROVIDER_STATUS_MAP.get(provider_status or "", EntitlementStatus.ACTIVE)


# =============================================================================
# Request/Response DTOs
# =============================================================================

class CreateCheckoutRequest(BaseModel):
    """Request DTO for creating a checkout session."""
    payment_type: CheckoutPaymentType = Field(
        default=CheckoutPaymentType.MONTHLY,
        description="monthly subscription or one-time lifetime purchase"
    )


class CheckoutResponse(BaseModel):
    """Response DTO for checkout session creation."""
    checkout_url: str
    session_id: str


class PortalResponse(BaseModel):
    """Response DTO for portal session creation."""
    portal_url: str


class VerifyCheckoutRequest(BaseModel):
    """Request DTO for the post-redirect verification call."""
    session_id: str = Field(..., min_length=1)


class CancelSubscriptionRequest(BaseModel):
    """Request DTO for cancelling a recurring subscription."""
    immediate: bool = Field(
        default=False,
        description="Cancel now instead of at the end of the paid period"
    )


class SubscriptionStatusResponse(BaseModel):
    """Response DTO for subscription status."""
    tier: SubscriptionTier
    is_premium: bool
    status: Optional[EntitlementStatus] = None
    payment_type: Optional[PaymentType] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    max_todos: Optional[int] = Field(description="None means unlimited")
    created_at: datetime
    updated_at: datetime


# =============================================================================
# Tier Configuration (Business Logic)
# =============================================================================

FREE_TIER_MAX_TODOS = 10

TIER_LIMITS = {
    SubscriptionTier.FREE: {
        "max_todos": FREE_TIER_MAX_TODOS,
    },
    SubscriptionTier.PREMIUM: {
        "max_todos": None,  # Unlimited
    },
}


def get_max_todos(tier: SubscriptionTier) -> Optional[int]:
    """Get the todo limit for a tier. None means unlimited."""
    return TIER_LIMITS.get(tier, TIER_LIMITS[SubscriptionTier.FREE])["max_todos"]
