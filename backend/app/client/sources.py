"""
Subscription Sources

Where the client reads the ``user_subscriptions`` row from, and how it
learns that the row changed.
"""

import logging
from typing import Any, Callable, Dict, Optional, Protocol

from pydantic import ValidationError as PydanticValidationError
from supabase import AsyncClient, acreate_client
from supabase.lib.client_options import AsyncClientOptions

from app.domain.subscription import Subscription, parse_subscription_row
from app.infrastructure.exceptions import SubscriptionFetchError


logger = logging.getLogger(__name__)

SUBSCRIPTIONS_TABLE = "user_subscriptions"

ChangeCallback = Callable[[Dict[str, Any]], None]


class SubscriptionSource(Protocol):
    """
    Data store access used by SubscriptionCoordinator.

    ``fetch_subscription`` returns None when the user has no row and raises
    SubscriptionFetchError on transport or query failures and on rows that
    cannot be parsed.
    """

    async def fetch_subscription(self, user_id: str) -> Optional[Subscription]: ...

    async def subscribe_changes(self, user_id: str, callback: ChangeCallback) -> Any: ...

    async def unsubscribe(self, handle: Any) -> None: ...


class SupabaseSubscriptionSource:
    """
    Reads the subscription row through Supabase (PostgREST) and listens for
    row changes over Supabase Realtime.

    The client should be authenticated as the end user so row level
    security limits reads to their own row.
    """

    def __init__(self, client: AsyncClient):
        self._client = client

    @classmethod
    async def create(
        cls,
        supabase_url: str,
        supabase_key: str,
        access_token: Optional[str] = None,
    ) -> "SupabaseSubscriptionSource":
        """
        Connect with the project's anon key, acting as the user that owns
        ``access_token`` for both REST reads and realtime.
        """
        options = AsyncClientOptions(postgrest_client_timeout=10)
        if access_token:
            options.headers["Authorization"] = f"Bearer {access_token}"

        client = await acreate_client(supabase_url, supabase_key, options)
        if access_token:
            await client.realtime.set_auth(access_token)
        return cls(client)

    async def fetch_subscription(self, user_id: str) -> Optional[Subscription]:
        try:
            response = await (
                self._client.table(SUBSCRIPTIONS_TABLE)
                .select("*")
                .eq("auth_user_id", user_id)
                .maybe_single()
                .execute()
            )
        except Exception as e:
            raise SubscriptionFetchError(
                f"Error fetching subscription: {str(e)}",
                original_error=e,
            )

        # maybe_single() yields None (or empty data) when no row matches
        if response is None or not response.data:
            return None

        try:
            return parse_subscription_row(response.data)
        except (ValueError, PydanticValidationError) as e:
            raise SubscriptionFetchError(
                f"Unreadable subscription row for user {user_id}: {str(e)}",
                original_error=e,
            )

    async def subscribe_changes(self, user_id: str, callback: ChangeCallback) -> Any:
        """Invoke ``callback`` on any insert/update/delete of the user's row."""
        channel = self._client.channel(f"subscription-changes-{user_id}")
        channel.on_postgres_changes(
            "*",
            schema="public",
            table=SUBSCRIPTIONS_TABLE,
            filter=f"auth_user_id=eq.{user_id}",
            callback=callback,
        )
        await channel.subscribe()
        logger.debug(f"Listening for subscription changes of user {user_id}")
        return channel

    async def unsubscribe(self, handle: Any) -> None:
        await self._client.remove_channel(handle)
