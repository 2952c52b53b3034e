"""Configuration management for choreledger."""

from decimal import Decimal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # SQLite Configuration
    sqlite_db_path: str = Field(default="./data/choreledger.db", description="Path to the SQLite database file")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="development", description="Deployment environment reported to Logfire")
    log_level: str = Field(default="info", description="Root log level")

    # Household Configuration
    timezone: str = Field(default="America/Chicago", description="IANA timezone used to resolve 'today'")
    default_account_name: str = Field(default="Spending", description="Name of the account created with a profile")

    # Ledger Configuration
    cash_out_threshold: Decimal = Field(
        default=Decimal("0.00"), description="Minimum balance an account must hold before a cash out"
    )

    # Streak Configuration
    streak_lookback_days: int = Field(default=365, description="Days scanned backward when computing streaks")

    # Weekly Reconciliation Configuration
    weekly_incomplete_penalty_percent: Decimal = Field(
        default=Decimal("0.10"),
        ge=0,
        description="Fraction of earn value charged per missed completion of a weekly-frequency task",
    )


# Application Constants
class Constants:
    """Application-wide constants."""

    # Currency
    MONEY_QUANTUM: Decimal = Decimal("0.01")

    # Bonus stacking caps
    MAX_POINT_MULTIPLIER: Decimal = Decimal("2.0")
    MAX_PENALTY_REDUCTION: Decimal = Decimal("0.75")

    # Bonus configuration defaults
    DEFAULT_BONUS_DURATION_DAYS: int = 7
    DEFAULT_BONUS_USE_COUNT: int = 1

    # Diminishing returns: each completion past the weekly quota pays half the previous one
    BONUS_COMPLETION_DECAY: Decimal = Decimal("0.5")

    # HTTP Status Codes
    HTTP_OK: int = 200
    HTTP_NOT_FOUND: int = 404

    # Pagination Defaults
    DEFAULT_PER_PAGE_LIMIT: int = 1000  # Default pagination limit for list queries


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
