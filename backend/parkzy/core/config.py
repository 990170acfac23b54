import logging
import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import BRAND_NAME

logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


_DEFAULT_SECRET_KEY = SecretStr("dev-only-secret-key-change-me")


class Settings(BaseSettings):
    environment: Literal["development", "test", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )
    app_name: str = Field(default=f"{BRAND_NAME} API", description="Application display name")

    # Database
    database_url: str = Field(
        default="sqlite+pysqlite:///./parkzy.db",
        description="SQLAlchemy database URL",
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements")

    # Auth
    secret_key: SecretStr = Field(
        default=_DEFAULT_SECRET_KEY,
        description="Secret key for JWT tokens",
    )
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(default=60, ge=1)

    # Stripe Configuration
    stripe_secret_key: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe secret key for backend API calls",
    )
    stripe_currency: str = Field(default="usd", description="Default currency for payments")
    stripe_return_url: str = Field(
        default="http://localhost:8080/booking/payment-complete",
        description="Return URL used when a payment needs customer action",
    )

    # Booking mutex (empty URL disables the lock)
    redis_url: str = Field(default="", description="Redis URL for the booking mutex")
    booking_lock_ttl_seconds: int = Field(default=90, ge=1)

    # Booking lifecycle
    booking_hold_ttl_minutes: int = Field(
        default=10, ge=1, description="Lifetime of a booking hold while payment is arranged"
    )
    booking_request_expiry_minutes: int = Field(
        default=60, ge=1, description="Minutes a host has to act on a held request"
    )
    min_extension_minutes: int = Field(default=15, ge=1)
    max_extension_minutes: int = Field(default=1440, ge=1)
    max_booking_past_skew_minutes: int = Field(
        default=5, ge=0, description="How far in the past a new booking may start"
    )
    extension_finalize_failure_policy: Literal["manual_review", "refund"] = Field(
        default="manual_review",
        description="What to do when an extension captured but could not be written",
    )

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("stripe_currency")
    @classmethod
    def _normalize_currency(cls, value: str) -> str:
        return value.strip().lower()

    @model_validator(mode="after")
    def _check_extension_bounds(self) -> "Settings":
        if self.min_extension_minutes > self.max_extension_minutes:
            raise ValueError("min_extension_minutes must not exceed max_extension_minutes")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def stripe_configured(self) -> bool:
        return bool(self.stripe_secret_key.get_secret_value())


settings = Settings()

if settings.is_production and settings.secret_key.get_secret_value() == (
    _DEFAULT_SECRET_KEY.get_secret_value()
):
    raise RuntimeError("Refusing to start: production requires SECRET_KEY to be set")
