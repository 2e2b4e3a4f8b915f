"""
TimeTrack Billing client library

Subscription state management (cache, fetch coordinator, data sources)
and an HTTP client for the billing API.
"""

from app.client.billing_client import BillingClient, BillingClientError
from app.client.cache import CachedSubscription, SubscriptionCache
from app.client.coordinator import SubscriptionCoordinator, SubscriptionState
from app.client.session import build_coordinator, create_subscription_coordinator
from app.client.sources import SubscriptionSource, SupabaseSubscriptionSource
from app.client.storage import FileStorage, MemoryStorage


__all__ = [
    "BillingClient",
    "BillingClientError",
    "CachedSubscription",
    "SubscriptionCache",
    "SubscriptionCoordinator",
    "SubscriptionState",
    "SubscriptionSource",
    "SupabaseSubscriptionSource",
    "FileStorage",
    "MemoryStorage",
    "build_coordinator",
    "create_subscription_coordinator",
]
