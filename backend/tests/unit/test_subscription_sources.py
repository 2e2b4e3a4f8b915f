"""
Unit tests for SupabaseSubscriptionSource.

The Supabase client is a MagicMock; the query builder chain ends in an
awaitable ``execute``.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from app.client.sources import SUBSCRIPTIONS_TABLE, SupabaseSubscriptionSource
from app.domain.subscription import SubscriptionStatus, SubscriptionType
from app.infrastructure.exceptions import SubscriptionFetchError


USER_ID = "00000000-0000-0000-0000-000000000001"


def client_returning(response=None, error=None):
    client = MagicMock()
    query = client.table.return_value.select.return_value.eq.return_value.maybe_single.return_value
    query.execute = AsyncMock(return_value=response, side_effect=error)
    return client


class TestFetchSubscription:

    @pytest.mark.asyncio
    async def test_parses_row(self):
        client = client_returning(MagicMock(data={
            "id": "11111111-1111-1111-1111-111111111111",
            "auth_user_id": USER_ID,
            "status": "trialing",
            "subscription_type": "free_trial",
            "current_period_end": "2027-01-01T00:00:00+00:00",
            "stripe_subscription_id": "sub_123",
        }))

        subscription = await SupabaseSubscriptionSource(client).fetch_subscription(USER_ID)

        client.table.assert_called_once_with(SUBSCRIPTIONS_TABLE)
        client.table.return_value.select.return_value.eq.assert_called_once_with("auth_user_id", USER_ID)
        assert subscription.owner_id == USER_ID
        assert subscription.status == SubscriptionStatus.TRIALING
        assert subscription.subscription_type == SubscriptionType.FREE_TRIAL
        assert subscription.provider_subscription_id == "sub_123"

    @pytest.mark.asyncio
    async def test_no_row(self):
        assert await SupabaseSubscriptionSource(client_returning(None)).fetch_subscription(USER_ID) is None
        assert await SupabaseSubscriptionSource(
            client_returning(MagicMock(data=None))
        ).fetch_subscription(USER_ID) is None

    @pytest.mark.asyncio
    async def test_query_failure(self):
        client = client_returning(error=ConnectionError("connection reset"))

        with pytest.raises(SubscriptionFetchError) as exc_info:
            await SupabaseSubscriptionSource(client).fetch_subscription(USER_ID)

        assert exc_info.value.code == "fetch_failed"

    @pytest.mark.asyncio
    async def test_unreadable_row(self):
        client = client_returning(MagicMock(data={
            "auth_user_id": USER_ID,
            "status": "active",
            "current_period_end": "not-a-date",
        }))

        with pytest.raises(SubscriptionFetchError) as exc_info:
            await SupabaseSubscriptionSource(client).fetch_subscription(USER_ID)

        assert exc_info.value.original_error is not None


class TestChanges:

    @pytest.mark.asyncio
    async def test_subscribe_filters_by_user(self):
        client = MagicMock()
        channel = client.channel.return_value
        channel.subscribe = AsyncMock()
        callback = MagicMock()

        handle = await SupabaseSubscriptionSource(client).subscribe_changes(USER_ID, callback)

        assert handle is channel
        client.channel.assert_called_once_with(f"subscription-changes-{USER_ID}")
        channel.on_postgres_changes.assert_called_once_with(
            "*",
            schema="public",
            table=SUBSCRIPTIONS_TABLE,
            filter=f"auth_user_id=eq.{USER_ID}",
            callback=callback,
        )
        channel.subscribe.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unsubscribe_removes_channel(self):
        client = MagicMock()
        client.remove_channel = AsyncMock()

        await SupabaseSubscriptionSource(client).unsubscribe("channel")

        client.remove_channel.assert_awaited_once_with("channel")
