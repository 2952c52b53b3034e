"""Unit tests for settings and the clock."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from choreledger.core.clock import SystemDateProvider
from choreledger.core.config import Settings


@pytest.mark.unit
class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        """Test the defaults used when nothing is configured."""
        settings = Settings(_env_file=None)

        assert settings.default_account_name == "Spending"
        assert settings.cash_out_threshold == Decimal("0.00")
        assert settings.streak_lookback_days == 365
        assert settings.logfire_token is None
        assert settings.environment == "development"
        assert settings.log_level == "info"

    def test_environment_overrides(self, monkeypatch):
        """Test values are read from the environment."""
        monkeypatch.setenv("CASH_OUT_THRESHOLD", "5.00")
        monkeypatch.setenv("TIMEZONE", "Europe/London")
        monkeypatch.setenv("STREAK_LOOKBACK_DAYS", "90")

        settings = Settings(_env_file=None)

        assert settings.cash_out_threshold == Decimal("5.00")
        assert settings.timezone == "Europe/London"
        assert settings.streak_lookback_days == 90


@pytest.mark.unit
class TestSystemDateProvider:
    """Tests for the system clock."""

    def test_unknown_timezone_falls_back_to_utc(self):
        """Test an unknown timezone id resolves to UTC."""
        provider = SystemDateProvider("Not/AZone")

        assert provider.timezone == UTC

    def test_today_in_configured_timezone(self):
        """Test today is the date in the configured timezone."""
        provider = SystemDateProvider("UTC")

        assert provider.today() == datetime.now(UTC).date()

    def test_utc_now_is_aware(self):
        """Test utc_now carries a UTC offset."""
        assert SystemDateProvider().utc_now().tzinfo == UTC
