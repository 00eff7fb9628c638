"""
Entitlement Database Models

SQLModel tables for the per-user entitlement and the billing-account
reverse index.
"""

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, DateTime


class EntitlementModel(SQLModel, table=True):
    """
    One row per user, keyed by the identity provider's user id.

    Maps to the 'entitlements' table.
    """

    __tablename__ = "entitlements"

    user_id: str = Field(primary_key=True, max_length=128)

    tier: str = Field(default="FREE", max_length=16)

    # Billing provider linkage
    billing_account_id: Optional[str] = Field(default=None, index=True, max_length=255)
    billing_subscription_id: Optional[str] = Field(default=None, max_length=255)
    payment_type: Optional[str] = Field(default=None, max_length=16)
    status: Optional[str] = Field(default=None, max_length=16)

    # Billing cycle
    current_period_end: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    cancel_at_period_end: bool = Field(default=False)

    # Timestamps
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class BillingAccountModel(SQLModel, table=True):
    """
    Reverse index from billing-account id to user id.

    Rows are created the first time an account is linked and never deleted.
    """

    __tablename__ = "billing_accounts"

    billing_account_id: str = Field(primary_key=True, max_length=255)
    user_id: str = Field(index=True, max_length=128)
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
