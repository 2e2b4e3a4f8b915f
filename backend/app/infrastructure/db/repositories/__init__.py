"""
Repository Layer for TimeTrack Billing

Exports all repository classes for dependency injection.
"""

from app.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
    get_subscription_repository,
)
from app.infrastructure.db.repositories.customer_repository import (
    CustomerRepository,
    get_customer_repository,
)


__all__ = [
    "SubscriptionRepository",
    "get_subscription_repository",
    "CustomerRepository",
    "get_customer_repository",
]
