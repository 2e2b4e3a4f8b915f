"""
Application Settings for TimeTrack Billing

Centralized configuration using Pydantic Settings with .env support.
All environment variables are validated at startup.
"""

from functools import lru_cache
from typing import Optional
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Stripe products are configured per plan; the active price for each
    product is resolved at checkout time so price changes in the Stripe
    dashboard never require a redeploy.
    """

    # Supabase Configuration
    supabase_url: str
    supabase_anon_key: Optional[str] = None
    supabase_jwt_secret: Optional[str] = None

    # Stripe Configuration
    stripe_secret_key: Optional[str] = None
    stripe_api_version: str = "2023-10-16"
    stripe_monthly_product_id: Optional[str] = None
    stripe_yearly_product_id: Optional[str] = None
    trial_period_days: int = 7

    # Application Settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Frontend / Checkout redirects
    frontend_url: str = "http://localhost:5173"
    checkout_success_path: str = "/subscription-success"
    checkout_cancel_path: str = "/pricing"
    allowed_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]

    # Client subscription timing (seconds)
    subscription_cache_ttl_seconds: float = 30.0
    subscription_stale_fallback_seconds: float = 300.0
    subscription_fetch_cooldown_seconds: float = 2.0

    # Database Configuration (SQLModel/SQLAlchemy)
    supabase_password: Optional[str] = None
    database_url: Optional[str] = None
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_echo: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_billing_config(self) -> "Settings":
        """Validate Stripe configuration outside development."""
        if self.trial_period_days < 1:
            raise ValueError("TRIAL_PERIOD_DAYS must be at least 1")

        if self.is_production:
            missing = [
                name for name, value in (
                    ("STRIPE_SECRET_KEY", self.stripe_secret_key),
                    ("STRIPE_MONTHLY_PRODUCT_ID", self.stripe_monthly_product_id),
                    ("STRIPE_YEARLY_PRODUCT_ID", self.stripe_yearly_product_id),
                )
                if not value
            ]
            if missing:
                raise ValueError(
                    f"Missing Stripe configuration in production: {', '.join(missing)}"
                )

        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export for direct import
settings = get_settings()
