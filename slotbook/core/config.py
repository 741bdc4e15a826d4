# slotbook/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import DEFAULT_CURRENCY

logger = logging.getLogger(__name__)


# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).resolve().parents[2] / ".env"
    logger.debug("[CONFIG] Looking for .env at: %s (exists=%s)", env_path, env_path.exists())
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: Literal["development", "test", "staging", "production"] = Field(
        default="development",
        description="Deployment environment name",
    )
    log_level: str = Field(default="INFO", description="Root log level for slotbook loggers")

    # Persistence
    database_url: str = Field(
        default="sqlite+pysqlite:///./slotbook.db",
        description="SQLAlchemy URL of the booking store",
    )
    database_echo: bool = False

    # Optional Redis for cross-process booking locks
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis URL; when unset, booking locks are in-process only",
    )
    lock_namespace: str = Field(default="slotbook", description="Prefix for Redis lock keys")

    # Payment gateway
    stripe_secret_key: Optional[SecretStr] = Field(
        default=None,
        description="Stripe secret key; the Stripe gateway refuses to start without it",
    )
    default_currency: str = DEFAULT_CURRENCY
    payment_gateway_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound for a single gateway call",
    )
    payment_gateway_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Gateway attempts per operation when the gateway times out",
    )

    # Booking locks
    booking_lock_ttl_seconds: int = Field(default=90, ge=1)
    booking_lock_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="How long a mutation waits for the per-booking lock",
    )

    # Booking policy
    booking_cutoff_hours: int = Field(
        default=1,
        ge=0,
        description="Bookings close this many hours before slot start",
    )
    cancellation_cutoff_hours: int = Field(
        default=24,
        ge=0,
        description="Users may cancel a confirmed booking until this many hours before start",
    )
    max_slot_advance_days: int = Field(default=180, ge=1)
    max_query_range_days: int = Field(default=90, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="SLOTBOOK_",
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("default_currency", mode="before")
    @classmethod
    def _normalize_currency(cls, value: object) -> object:
        if isinstance(value, str):
            cleaned = value.strip().upper()
            if len(cleaned) != 3 or not cleaned.isalpha():
                raise ValueError("default_currency must be a 3-letter ISO code")
            return cleaned
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @model_validator(mode="after")
    def _warn_on_missing_gateway(self) -> "Settings":
        if self.environment == "production" and self.stripe_secret_key is None:
            logger.warning(
                "SLOTBOOK_STRIPE_SECRET_KEY is not set in production; "
                "only the in-memory payment gateway will be available"
            )
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


settings = Settings()
