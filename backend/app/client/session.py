"""
Client Session Wiring

Builds the subscription cache, Supabase source and fetch coordinator for
one signed-in user, taking the timing contract from application settings.
"""

import logging
from typing import Optional

from app.client.cache import SubscriptionCache
from app.client.coordinator import SubscriptionCoordinator
from app.client.sources import SubscriptionSource, SupabaseSubscriptionSource
from app.client.storage import Storage
from app.config.settings import Settings, get_settings
from app.infrastructure.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


def build_coordinator(
    source: SubscriptionSource,
    storage: Optional[Storage] = None,
    settings: Optional[Settings] = None,
) -> SubscriptionCoordinator:
    """Coordinator over ``source`` using the configured TTL, cooldown and stale window."""
    settings = settings or get_settings()
    cache = SubscriptionCache(storage, ttl=settings.subscription_cache_ttl_seconds)
    return SubscriptionCoordinator(
        source,
        cache,
        cooldown=settings.subscription_fetch_cooldown_seconds,
        stale_fallback=settings.subscription_stale_fallback_seconds,
    )


async def create_subscription_coordinator(
    access_token: str,
    storage: Optional[Storage] = None,
    settings: Optional[Settings] = None,
) -> SubscriptionCoordinator:
    """
    Connect to Supabase as the user owning ``access_token``.

    Raises:
        ConfigurationError: SUPABASE_ANON_KEY is not set
    """
    settings = settings or get_settings()
    if not settings.supabase_anon_key:
        raise ConfigurationError(
            "Supabase anon key is required for subscription reads",
            missing_keys=["SUPABASE_ANON_KEY"],
        )

    source = await SupabaseSubscriptionSource.create(
        settings.supabase_url,
        settings.supabase_anon_key,
        access_token=access_token,
    )
    logger.debug("Created Supabase subscription source")
    return build_coordinator(source, storage, settings)
