"""
Payments Infrastructure Module

Stripe adapter implementing the BillingProvider interface.
"""

from todo_app.infrastructure.payments.stripe_service import StripeBillingProvider

__all__ = ["StripeBillingProvider"]
