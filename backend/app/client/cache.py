"""
Subscription Cache

Single-slot snapshot of the current user's subscription with a short
freshness window. A snapshot older than the TTL is a miss, never an error;
unreadable data is cleared and also reported as a miss.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from app.client.storage import MemoryStorage, Storage
from app.domain.subscription import Subscription


logger = logging.getLogger(__name__)

CACHE_KEY = "subscription_data"
CACHE_TIME_KEY = "subscription_data_time"

DEFAULT_TTL_SECONDS = 30.0


@dataclass(frozen=True)
class CachedSubscription:
    subscription: Optional[Subscription]
    is_valid: bool


_MISS = CachedSubscription(subscription=None, is_valid=False)


class SubscriptionCache:
    """
    Cache for one subscription snapshot.

    Args:
        storage: String key/value backend (defaults to in-memory)
        ttl: Freshness window in seconds
        clock: Wall-clock source in seconds; injectable for tests
    """

    def __init__(
        self,
        storage: Optional[Storage] = None,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._storage = storage if storage is not None else MemoryStorage()
        self._ttl = ttl
        self._clock = clock

    @property
    def ttl(self) -> float:
        return self._ttl

    def put(self, subscription: Subscription) -> None:
        """Store a snapshot stamped with the current time."""
        self._storage.set_item(CACHE_KEY, subscription.model_dump_json())
        self._storage.set_item(CACHE_TIME_KEY, repr(self._clock()))

    def get(self) -> CachedSubscription:
        """Return the snapshot if it is younger than the TTL."""
        return self._read(self._ttl)

    def get_stale(self, max_age: float) -> Optional[Subscription]:
        """
        Return the snapshot if it is younger than ``max_age``.

        Used as a fallback when a fetch fails, so a transient error does not
        erase a recent known-good state.
        """
        return self._read(max_age).subscription

    def invalidate(self) -> None:
        self._storage.remove_item(CACHE_KEY)
        self._storage.remove_item(CACHE_TIME_KEY)

    def _read(self, max_age: float) -> CachedSubscription:
        raw = self._storage.get_item(CACHE_KEY)
        raw_time = self._storage.get_item(CACHE_TIME_KEY)
        if raw is None or raw_time is None:
            return _MISS

        try:
            fetched_at = float(raw_time)
            subscription = Subscription.model_validate_json(raw)
        except (ValueError, PydanticValidationError) as e:
            logger.debug(f"Discarding unreadable subscription cache: {e}")
            self.invalidate()
            return _MISS

        if self._clock() - fetched_at >= max_age:
            return _MISS

        return CachedSubscription(subscription=subscription, is_valid=True)
