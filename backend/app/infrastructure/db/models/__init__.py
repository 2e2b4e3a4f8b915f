"""
SQLModel ORM Models for TimeTrack Billing

Exports all database models for Alembic autogenerate and application use.
Import models here to register them with SQLModel.metadata.
"""

from app.infrastructure.db.models.base import TimestampMixin, utcnow
from app.infrastructure.db.models.subscription import (
    StripeCustomerModel,
    SubscriptionModel,
)


__all__ = [
    # Base
    "TimestampMixin",
    "utcnow",
    # Billing
    "StripeCustomerModel",
    "SubscriptionModel",
]
