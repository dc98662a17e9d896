from __future__ import annotations

"""Centralized configuration using pydantic-settings.

All configuration is loaded from environment variables and .env files.
For nested settings, use double underscore: BILLING__MAX_RENEW_ATTEMPTS=5
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class SchedulerBackend(str, Enum):
    """Where the renewal control loop runs."""

    INPROCESS = "inprocess"
    CELERY = "celery"


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )

    # ============================================================
    # Core Application Settings
    # ============================================================

    app_name: str = Field("dibnow-billing", description="Application name")
    app_version: str = Field("1.0.0", description="Application version")
    environment: Environment = Field(Environment.DEVELOPMENT, description="Deployment environment")
    debug: bool = Field(False, description="Debug mode")
    testing: bool = Field(False, description="Testing mode")

    # ============================================================
    # Database Configuration
    # ============================================================

    class DatabaseSettings(BaseModel):
        """Database configuration."""

        url: str | None = Field(None, description="Full database URL")
        host: str = Field("localhost", description="Database host")
        port: int = Field(5432, description="Database port")
        database: str = Field("dibnow", description="Database name")
        username: str = Field("dibnow", description="Database username")
        password: str = Field("", description="Database password")

        # Connection pool
        pool_size: int = Field(10, description="Connection pool size")
        max_overflow: int = Field(20, description="Max overflow connections")
        pool_timeout: int = Field(30, description="Pool timeout in seconds")
        pool_recycle: int = Field(3600, description="Recycle connections after seconds")
        pool_pre_ping: bool = Field(True, description="Test connections before use")

        echo: bool = Field(False, description="Echo SQL statements")

    database: DatabaseSettings = DatabaseSettings()  # type: ignore[call-arg]

    # ============================================================
    # Observability
    # ============================================================

    class ObservabilitySettings(BaseModel):
        """Logging configuration."""

        log_level: LogLevel = Field(LogLevel.INFO, description="Log level")
        log_format: str = Field("json", description="Log format (json or console)")

    observability: ObservabilitySettings = ObservabilitySettings()  # type: ignore[call-arg]

    # ============================================================
    # Billing Configuration
    # ============================================================

    class BillingSettings(BaseModel):
        """Subscription, renewal and quota configuration."""

        # Renewal scheduling
        renewal_lookahead_days: int = Field(
            7, description="Start renewal attempts this many days before expiry"
        )
        max_renew_attempts: int = Field(3, description="Automated renewal attempts per window")
        renewal_interval_seconds: int = Field(3600, description="Renewal sweep period")
        renewal_timeout_seconds: float = Field(
            30.0, description="Per-attempt timeout for a provider renewal call"
        )
        renewal_grace_days: int = Field(
            30, description="Days after hard expiry during which auto-renew keeps retrying"
        )
        scheduler_enabled: bool = Field(True, description="Run the renewal control loop")
        scheduler_backend: SchedulerBackend = Field(
            SchedulerBackend.INPROCESS, description="inprocess (asyncio) or celery beat"
        )

        # Plans and quotas
        default_plan_name: str = Field("FREE TRIAL", description="Fallback plan for quotas")
        fallback_plan_duration_days: int = Field(
            30, description="Duration used when an approved plan cannot be resolved"
        )
        unlimited_threshold: int = Field(
            999, description="Quotas at or above this value are treated as unlimited"
        )
        usage_timezone: str = Field(
            "UTC", description="Timezone whose midnight starts a monthly quota period"
        )

        # Money
        default_currency: str = Field("USD", description="Default wallet currency")
        default_locale: str = Field("en_US", description="Locale for formatted amounts")

    billing: BillingSettings = BillingSettings()  # type: ignore[call-arg]

    # ============================================================
    # Payment providers
    # ============================================================

    class ProviderSettings(BaseModel):
        """Renewal endpoints of the external payment providers."""

        stripe_renewal_url: str | None = Field(
            "http://localhost:5000/api/stripe/renew-subscription",
            description="Stripe renewal endpoint",
        )
        stripe_api_key: str | None = Field(None, description="Bearer token for Stripe renewals")
        paypal_renewal_url: str | None = Field(
            "http://localhost:5000/api/paypal/create-renewal-order",
            description="PayPal renewal endpoint",
        )
        paypal_api_key: str | None = Field(None, description="Bearer token for PayPal renewals")
        payfast_renewal_url: str | None = Field(
            "http://localhost:5000/api/payfast/renew-subscription",
            description="PayFast renewal endpoint",
        )
        payfast_api_key: str | None = Field(None, description="Bearer token for PayFast renewals")
        http_timeout_seconds: float = Field(20.0, description="HTTP client timeout")

    providers: ProviderSettings = ProviderSettings()  # type: ignore[call-arg]

    # ============================================================
    # Celery & Task Queue
    # ============================================================

    class CelerySettings(BaseModel):
        """Celery configuration."""

        broker_url: str = Field("redis://localhost:6379/0", description="Broker URL")
        result_backend: str = Field("redis://localhost:6379/1", description="Result backend")
        timezone: str = Field("UTC", description="Timezone")

    celery: CelerySettings = CelerySettings()  # type: ignore[call-arg]

    # ============================================================
    # Validation & Helpers
    # ============================================================

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v: Any) -> Any:
        """Accept environment names in any case."""
        if isinstance(v, str):
            return Environment(v.lower())
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_testing(self) -> bool:
        """Check if running in test mode."""
        return self.testing or self.environment == Environment.TEST


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get global settings instance (singleton)."""
    global _settings
    if _settings is None:
        _settings = Settings()  # type: ignore
    return _settings


def reset_settings() -> None:
    """Reset settings (mainly for testing)."""
    global _settings
    _settings = None


# Convenience export
settings = get_settings()
