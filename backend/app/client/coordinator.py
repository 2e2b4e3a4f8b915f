"""
Subscription Fetch Coordinator

Produces the current subscription for the signed-in user while keeping
network traffic to a minimum:

1. ``skip_cache=True`` always starts a new fetch.
2. A valid cache entry is returned without a network call.
3. Otherwise, a fetch for the same user started less than ``cooldown``
   seconds ago is reused, whether it is still running or already finished.
4. Otherwise a new fetch starts. A missing row clears the cache; a failed
   or unreadable fetch falls back to a snapshot younger than
   ``stale_fallback`` seconds.

The in-flight marker is released lazily once the cooldown has elapsed, so
consumers that mount in a burst share one round-trip.

One coordinator is created per client session and handed to every
consumer that needs subscription data.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Set

from app.client.cache import SubscriptionCache
from app.client.sources import SubscriptionSource
from app.domain.subscription import Subscription, is_active
from app.infrastructure.exceptions import SubscriptionFetchError


logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_SECONDS = 2.0
DEFAULT_STALE_FALLBACK_SECONDS = 300.0


@dataclass(frozen=True)
class SubscriptionState:
    """What the UI needs: the record and whether it entitles premium features."""
    subscription: Optional[Subscription]
    has_active_subscription: bool


Listener = Callable[[SubscriptionState], None]


class SubscriptionCoordinator:
    """
    De-duplicating subscription loader with push invalidation.

    Attributes:
        loading: True while the current fetch is running
        subscription: Last published subscription (None if absent)
        has_active_subscription: Derived from ``is_active(subscription)``
    """

    def __init__(
        self,
        source: SubscriptionSource,
        cache: Optional[SubscriptionCache] = None,
        cooldown: float = DEFAULT_COOLDOWN_SECONDS,
        stale_fallback: float = DEFAULT_STALE_FALLBACK_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._source = source
        self._cache = cache if cache is not None else SubscriptionCache()
        self._cooldown = cooldown
        self._stale_fallback = stale_fallback
        self._clock = clock

        self._inflight: Optional["asyncio.Future[SubscriptionState]"] = None
        self._inflight_user: Optional[str] = None
        self._fetch_started_at: Optional[float] = None
        self._listeners: List[Listener] = []

        self._watch_handle: Any = None
        self._watched_user: Optional[str] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._change_tasks: Set["asyncio.Task[SubscriptionState]"] = set()

        self.loading = False
        self.subscription: Optional[Subscription] = None
        self.has_active_subscription = False

    @property
    def cache(self) -> SubscriptionCache:
        return self._cache

    @property
    def cooldown(self) -> float:
        return self._cooldown

    @property
    def stale_fallback(self) -> float:
        return self._stale_fallback

    @property
    def state(self) -> SubscriptionState:
        return SubscriptionState(self.subscription, self.has_active_subscription)

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a callback for state changes; returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_subscription(
        self,
        user_id: Optional[str],
        skip_cache: bool = False,
    ) -> SubscriptionState:
        """Current subscription state for ``user_id``; None means signed out."""
        if not user_id:
            return self._publish(None)

        if not skip_cache:
            cached = self._cache.get()
            if cached.is_valid and cached.subscription.owner_id == user_id:
                return self._publish(cached.subscription)

            if self._within_cooldown(user_id):
                return await asyncio.shield(self._inflight)

        return await asyncio.shield(self._start_fetch(user_id))

    async def refresh(self, user_id: Optional[str]) -> SubscriptionState:
        """
        User-initiated refresh: drop the cached snapshot and fetch.

        Repeated calls within the cooldown share a single fetch.
        """
        self._cache.invalidate()
        if not user_id:
            return self._publish(None)

        if self._within_cooldown(user_id):
            return await asyncio.shield(self._inflight)

        return await asyncio.shield(self._start_fetch(user_id))

    def invalidate(self) -> None:
        """
        Forget the snapshot and any recent fetch.

        Called after a mutation so the next read observes the new state.
        """
        self._cache.invalidate()
        self._release()

    def _release(self) -> None:
        self._inflight = None
        self._inflight_user = None
        self._fetch_started_at = None

    def _within_cooldown(self, user_id: str) -> bool:
        """True if a fetch for ``user_id`` started less than ``cooldown`` ago."""
        if self._inflight is None or self._fetch_started_at is None:
            return False
        if self._clock() - self._fetch_started_at >= self._cooldown:
            self._release()
            return False
        return self._inflight_user == user_id

    def _start_fetch(self, user_id: str) -> "asyncio.Future[SubscriptionState]":
        self._fetch_started_at = self._clock()
        self._inflight_user = user_id
        self.loading = True
        task = asyncio.ensure_future(self._fetch(user_id))
        self._inflight = task
        return task

    def _superseded(self, user_id: str) -> bool:
        # another user signed in while this fetch was running
        return self._inflight_user is not None and self._inflight_user != user_id

    async def _fetch(self, user_id: str) -> SubscriptionState:
        try:
            subscription = await self._load(user_id)
        finally:
            if self._inflight is None or self._inflight is asyncio.current_task():
                self.loading = False

        if self._superseded(user_id):
            logger.debug(f"Discarding subscription fetched for previous user {user_id}")
            return SubscriptionState(subscription, is_active(subscription))
        return self._publish(subscription)

    async def _load(self, user_id: str) -> Optional[Subscription]:
        try:
            subscription = await self._source.fetch_subscription(user_id)
        except SubscriptionFetchError as e:
            logger.warning(f"Subscription fetch failed for user {user_id}: {e.message}")
            fallback = self._cache.get_stale(self._stale_fallback)
            if fallback is not None and fallback.owner_id != user_id:
                return None
            return fallback

        if self._superseded(user_id):
            return subscription

        if subscription is None:
            logger.debug(f"No subscription found for user {user_id}")
            self._cache.invalidate()
        else:
            self._cache.put(subscription)
        return subscription

    def _publish(self, subscription: Optional[Subscription]) -> SubscriptionState:
        state = SubscriptionState(subscription, is_active(subscription))
        changed = state != self.state

        self.subscription = state.subscription
        self.has_active_subscription = state.has_active_subscription

        if changed:
            for listener in list(self._listeners):
                try:
                    listener(state)
                except Exception:
                    logger.exception("Subscription listener failed")
        return state

    # =========================================================================
    # Change Notifications
    # =========================================================================

    async def watch(self, user_id: str) -> SubscriptionState:
        """
        Load the user's subscription and refetch whenever the row changes.

        Replaces any previous watch.
        """
        await self.unwatch()
        self._loop = asyncio.get_running_loop()
        self._watched_user = user_id
        self._watch_handle = await self._source.subscribe_changes(user_id, self._on_change)
        return await self.get_subscription(user_id)

    async def unwatch(self) -> None:
        handle, self._watch_handle = self._watch_handle, None
        self._watched_user = None
        if handle is not None:
            await self._source.unsubscribe(handle)

    def _on_change(self, payload: Any) -> None:
        # Realtime callbacks may run outside the coordinator's loop
        if self._loop is None or self._watched_user is None:
            return
        logger.debug(f"Subscription row changed for user {self._watched_user}")
        self._loop.call_soon_threadsafe(self._refetch_after_change, self._watched_user)

    def _refetch_after_change(self, user_id: str) -> None:
        if user_id != self._watched_user:
            return
        task = asyncio.ensure_future(self.get_subscription(user_id, skip_cache=True))
        self._change_tasks.add(task)
        task.add_done_callback(self._change_tasks.discard)
