"""
Unit tests for the entitlement predicates.

Tests is_active / is_expired / ui_status and the trial helpers against
fixed points in time.
"""

from datetime import datetime, timedelta, timezone

import pytest

from app.domain.subscription import (
    Subscription,
    SubscriptionStatus,
    is_active,
    is_expired,
    is_trial_active,
    is_trial_expired,
    ui_status,
)


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
FUTURE = NOW + timedelta(days=10)
PAST = NOW - timedelta(days=1)


def sub(status: SubscriptionStatus, period_end=FUTURE) -> Subscription:
    return Subscription(owner_id="user-1", status=status, current_period_end=period_end)


class TestIsActive:
    """Tests for is_active."""

    @pytest.mark.parametrize("status", [
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.TRIALING,
        SubscriptionStatus.CANCELED,
    ])
    def test_entitled_statuses_before_period_end(self, status):
        assert is_active(sub(status), now=NOW) is True

    def test_canceled_after_period_end_is_not_active(self):
        assert is_active(sub(SubscriptionStatus.CANCELED, PAST), now=NOW) is False

    def test_active_status_with_lapsed_period_is_not_active(self):
        assert is_active(sub(SubscriptionStatus.ACTIVE, PAST), now=NOW) is False

    @pytest.mark.parametrize("status", [
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.UNPAID,
        SubscriptionStatus.INCOMPLETE,
        SubscriptionStatus.INCOMPLETE_EXPIRED,
    ])
    def test_non_entitled_statuses(self, status):
        assert is_active(sub(status), now=NOW) is False

    def test_missing_period_end(self):
        assert is_active(sub(SubscriptionStatus.ACTIVE, period_end=None), now=NOW) is False

    def test_none(self):
        assert is_active(None, now=NOW) is False

    def test_naive_period_end_treated_as_utc(self):
        naive_future = (NOW + timedelta(hours=1)).replace(tzinfo=None)
        assert is_active(sub(SubscriptionStatus.ACTIVE, naive_future), now=NOW) is True


class TestIsExpired:
    """Tests for is_expired."""

    def test_past_period_end_is_expired_regardless_of_status(self):
        assert is_expired(sub(SubscriptionStatus.ACTIVE, PAST), now=NOW) is True
        assert is_expired(sub(SubscriptionStatus.TRIALING, PAST), now=NOW) is True

    def test_future_period_end(self):
        assert is_expired(sub(SubscriptionStatus.CANCELED), now=NOW) is False

    def test_missing_period_end_or_record(self):
        assert is_expired(sub(SubscriptionStatus.ACTIVE, period_end=None), now=NOW) is False
        assert is_expired(None, now=NOW) is False


class TestUiStatus:
    """Tests for ui_status."""

    def test_none_reads_as_canceled(self):
        assert ui_status(None, now=NOW) == "canceled"

    def test_lapsed_active_reads_as_canceled(self):
        assert ui_status(sub(SubscriptionStatus.ACTIVE, PAST), now=NOW) == "canceled"

    def test_current_status_passes_through(self):
        assert ui_status(sub(SubscriptionStatus.TRIALING), now=NOW) == "trialing"
        assert ui_status(sub(SubscriptionStatus.PAST_DUE), now=NOW) == "past_due"


class TestTrialPredicates:
    """Tests for is_trial_active / is_trial_expired."""

    def test_running_trial(self):
        trial = sub(SubscriptionStatus.TRIALING)
        assert is_trial_active(trial, now=NOW) is True
        assert is_trial_expired(trial, now=NOW) is False

    def test_lapsed_trial(self):
        trial = sub(SubscriptionStatus.TRIALING, PAST)
        assert is_trial_active(trial, now=NOW) is False
        assert is_trial_expired(trial, now=NOW) is True

    def test_paid_subscription_is_not_a_trial(self):
        paid = sub(SubscriptionStatus.ACTIVE, PAST)
        assert is_trial_active(paid, now=NOW) is False
        assert is_trial_expired(paid, now=NOW) is False

    def test_none(self):
        assert is_trial_active(None) is False
        assert is_trial_expired(None) is False
