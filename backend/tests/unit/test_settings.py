"""
Unit tests for Pydantic Settings configuration.

Tests settings loading and validation.
"""

import pytest
from pydantic import ValidationError

from app.config.settings import Settings


REQUIRED = {
    "supabase_url": "https://testproject.supabase.co",
}


class TestSettings:
    """Tests for Settings configuration."""

    def test_settings_loads_from_env(self):
        """Settings should load from environment variables."""
        from app.config.settings import settings

        assert settings.supabase_url == "https://testproject.supabase.co"
        assert settings.stripe_monthly_product_id == "prod_monthly"
        assert settings.stripe_yearly_product_id == "prod_yearly"

    def test_settings_has_defaults(self):
        """Settings should have the documented defaults."""
        settings = Settings(_env_file=None, **REQUIRED)

        assert settings.trial_period_days == 7
        assert settings.checkout_success_path == "/subscription-success"
        assert settings.checkout_cancel_path == "/pricing"
        assert settings.subscription_cache_ttl_seconds == 30
        assert settings.subscription_stale_fallback_seconds == 300
        assert settings.subscription_fetch_cooldown_seconds == 2

    def test_is_production_property(self):
        """is_production should follow ENVIRONMENT."""
        from app.config.settings import settings

        assert settings.is_production is False
        assert settings.is_development is True

    def test_allowed_origins_includes_localhost(self):
        """allowed_origins should include localhost for development."""
        settings = Settings(_env_file=None, **REQUIRED)

        assert "http://localhost:5173" in settings.allowed_origins


class TestBillingValidation:
    """Tests for the Stripe configuration validator."""

    def test_production_requires_stripe_configuration(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(
                _env_file=None,
                environment="production",
                stripe_secret_key=None,
                stripe_monthly_product_id=None,
                stripe_yearly_product_id="prod_yearly",
                **REQUIRED,
            )

        assert "STRIPE_MONTHLY_PRODUCT_ID" in str(exc_info.value)

    def test_production_with_stripe_configuration(self):
        settings = Settings(
            _env_file=None,
            environment="production",
            stripe_secret_key="sk_live_123",
            stripe_monthly_product_id="prod_monthly",
            stripe_yearly_product_id="prod_yearly",
            **REQUIRED,
        )

        assert settings.is_production is True

    def test_trial_period_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, trial_period_days=0, **REQUIRED)
