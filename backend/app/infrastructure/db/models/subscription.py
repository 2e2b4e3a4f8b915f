"""
Subscription Database Models

SQLModel tables for subscription data persistence.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, DateTime
from sqlalchemy.dialects.postgresql import UUID as PGUUID

from app.infrastructure.db.models.base import TimestampMixin


class SubscriptionModel(TimestampMixin, table=True):
    """
    One row per user holding the local projection of their Stripe subscription.

    Maps to the 'user_subscriptions' table in PostgreSQL. ``auth_user_id`` is
    unique so reconciliation can upsert by user.
    """

    __tablename__ = "user_subscriptions"

    id: UUID = Field(default_factory=uuid4, sa_column=Column(PGUUID(as_uuid=True), primary_key=True))
    auth_user_id: UUID = Field(sa_column=Column(PGUUID(as_uuid=True), unique=True, index=True, nullable=False))

    # Stripe IDs
    stripe_customer_id: Optional[str] = Field(default=None, index=True)
    stripe_subscription_id: Optional[str] = Field(default=None, index=True)
    price_id: Optional[str] = Field(default=None)

    # Subscription details
    status: str = Field(default="incomplete")
    subscription_type: str = Field(default="monthly")

    # Billing period dates
    current_period_start: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )
    current_period_end: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )


class StripeCustomerModel(TimestampMixin, table=True):
    """
    Mapping between an auth user and their Stripe customer.

    Written before checkout and independent of the subscription row, so it
    can be retried safely.
    """

    __tablename__ = "stripe_customers"

    auth_user_id: UUID = Field(sa_column=Column(PGUUID(as_uuid=True), primary_key=True))
    stripe_customer_id: str = Field(unique=True, index=True)
