"""
Test configuration and fixtures for TimeTrack Billing.

Provides shared fixtures for unit and integration tests.
"""

import os

# Settings are loaded at import time; configure them before any app import.
os.environ["SUPABASE_URL"] = "https://testproject.supabase.co"
os.environ["SUPABASE_ANON_KEY"] = "test-anon-key"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret-with-at-least-32-bytes!"
os.environ["ENVIRONMENT"] = "development"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_123"
os.environ["STRIPE_MONTHLY_PRODUCT_ID"] = "prod_monthly"
os.environ["STRIPE_YEARLY_PRODUCT_ID"] = "prod_yearly"
os.environ["FRONTEND_URL"] = "https://app.timetrack.test"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("SUPABASE_PASSWORD", None)

from datetime import datetime, timedelta, timezone
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from app.domain.subscription import Subscription, SubscriptionStatus, SubscriptionType
from app.domain.user import AuthenticatedUser


USER_ID = "00000000-0000-0000-0000-000000000001"
OTHER_USER_ID = "00000000-0000-0000-0000-000000000002"


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def app():
    """Get the FastAPI application."""
    from app.main import app
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def anon_client(app):
    """Test client without any authentication override."""
    return TestClient(app)


@pytest.fixture
def client(app, user, mock_billing_service):
    """Test client authenticated as ``user`` with a mocked billing service."""
    from app.api.dependencies import get_current_user
    from app.infrastructure.services.billing_service import get_billing_service

    app.dependency_overrides[get_current_user] = lambda: user
    app.dependency_overrides[get_billing_service] = lambda: mock_billing_service
    return TestClient(app)


# =============================================================================
# Mock Fixtures
# =============================================================================

@pytest.fixture
def user():
    return AuthenticatedUser(id=USER_ID, email="ada@example.com")


@pytest.fixture
def mock_billing_service():
    """Mock for BillingService."""
    mock = MagicMock()
    mock.create_checkout = AsyncMock()
    mock.verify_checkout = AsyncMock()
    mock.cancel_subscription = AsyncMock()
    mock.change_plan = AsyncMock()
    mock.get_billing_history = AsyncMock()
    mock.get_invoice_pdf = AsyncMock()
    return mock


@pytest.fixture
def mock_stripe_service():
    """Mock for StripeService."""
    mock = MagicMock()
    mock.create_customer = AsyncMock(return_value=MagicMock(id="cus_new"))
    mock.get_active_price_id = AsyncMock(
        side_effect=lambda product_id: {
            "prod_monthly": "price_monthly_2024",
            "prod_yearly": "price_yearly_2024",
        }[product_id]
    )
    mock.create_checkout_session = AsyncMock(
        return_value=MagicMock(id="cs_test_123", url="https://checkout.stripe.com/c/cs_test_123")
    )
    mock.retrieve_checkout_session = AsyncMock()
    mock.retrieve_subscription = AsyncMock()
    mock.cancel_at_period_end = AsyncMock()
    mock.change_subscription_price = AsyncMock()
    mock.list_invoices = AsyncMock(return_value=[])
    mock.retrieve_invoice = AsyncMock()
    return mock


@pytest.fixture
def mock_subscription_repo():
    """Mock for SubscriptionRepository."""
    mock = MagicMock()
    mock.get_by_user_id = AsyncMock(return_value=None)
    mock.upsert = AsyncMock(side_effect=lambda subscription: subscription)
    mock.update_status = AsyncMock()
    mock.update_plan = AsyncMock()
    return mock


@pytest.fixture
def mock_customer_repo():
    """Mock for CustomerRepository."""
    mock = MagicMock()
    mock.get_customer_id = AsyncMock(return_value=None)
    mock.save_customer_id = AsyncMock(side_effect=lambda user_id, customer_id: customer_id)
    return mock


@pytest.fixture
def billing_service(mock_stripe_service, mock_subscription_repo, mock_customer_repo):
    from app.config.settings import get_settings
    from app.infrastructure.services.billing_service import BillingService

    return BillingService(
        stripe_service=mock_stripe_service,
        subscription_repo=mock_subscription_repo,
        customer_repo=mock_customer_repo,
        settings=get_settings(),
    )


# =============================================================================
# Sample Data Fixtures
# =============================================================================

def make_subscription(
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    subscription_type: SubscriptionType = SubscriptionType.MONTHLY,
    period_end: Optional[datetime] = None,
    owner_id: str = USER_ID,
    provider_subscription_id: Optional[str] = "sub_123",
    price_id: Optional[str] = "price_monthly_2024",
) -> Subscription:
    now = datetime.now(timezone.utc)
    return Subscription(
        id="11111111-1111-1111-1111-111111111111",
        owner_id=owner_id,
        status=status,
        subscription_type=subscription_type,
        current_period_start=now - timedelta(days=5),
        current_period_end=period_end if period_end is not None else now + timedelta(days=25),
        price_id=price_id,
        provider_subscription_id=provider_subscription_id,
        provider_customer_id="cus_123",
    )


@pytest.fixture
def active_subscription():
    return make_subscription()


@pytest.fixture
def subscription_factory():
    return make_subscription
