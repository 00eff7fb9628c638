"""
Application Settings for Todo Premium

Centralized configuration using Pydantic Settings with .env support.
All environment variables are validated at startup.
"""

import logging
from functools import lru_cache
from typing import Literal, Optional
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    BILLING_EMULATOR enables the local/dev billing mode in which webhook
    payloads may arrive unsigned (e.g. replayed by hand or by a CLI
    forwarder without a shared secret). It is refused in production.
    """

    # Application Settings
    environment: Literal["development", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # CORS Configuration
    frontend_url: str = "http://localhost:3000"
    allowed_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Identity (bearer JWTs issued by the auth provider)
    auth_jwt_secret: Optional[str] = None
    auth_jwks_url: Optional[str] = None
    auth_issuer: Optional[str] = None
    auth_audience: Optional[str] = None

    # Stripe Configuration
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_api_version: Optional[str] = None
    stripe_webhook_tolerance_seconds: int = 300
    billing_emulator: bool = False

    # Pricing (in cents)
    billing_currency: str = "usd"
    premium_monthly_amount_cents: int = 999
    premium_lifetime_amount_cents: int = 9999

    # Database Configuration (SQLModel/SQLAlchemy)
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
    def validate_billing(self) -> "Settings":
        """Refuse production configurations that would accept unsigned webhooks."""
        logger = logging.getLogger(__name__)

        if self.environment == "production":
            if not self.stripe_webhook_secret:
                raise ValueError(
                    "STRIPE_WEBHOOK_SECRET required when ENVIRONMENT=production"
                )
            if self.billing_emulator:
                raise ValueError("BILLING_EMULATOR cannot be enabled in production")

        elif not self.stripe_webhook_secret and self.billing_emulator:
            logger.warning(
                "Stripe webhook secret not configured; unsigned webhook "
                "payloads will be accepted (billing emulator mode)"
            )

        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment == "development"

    @property
    def allow_unsigned_webhooks(self) -> bool:
        """Unsigned events are only trusted in emulator mode without a secret."""
        return self.billing_emulator and not self.stripe_webhook_secret


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export for direct import
settings = get_settings()
