"""Clock abstraction so "today" is resolved consistently and can be fixed in tests."""

from datetime import UTC, date, datetime, tzinfo
from typing import Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from choreledger.core.config import settings


class DateProvider(Protocol):
    """Source of the current date and time."""

    def today(self) -> date:
        """Today's date in the household timezone."""
        ...

    def utc_now(self) -> datetime:
        """Current timezone-aware UTC timestamp."""
        ...


class SystemDateProvider:
    """System clock that resolves "today" in the configured household timezone."""

    def __init__(self, timezone_id: str | None = None) -> None:
        self._timezone_id = timezone_id

    @property
    def timezone(self) -> tzinfo:
        """Configured timezone, falling back to UTC when the id is unknown."""
        timezone_id = self._timezone_id or settings.timezone
        try:
            return ZoneInfo(timezone_id)
        except (ZoneInfoNotFoundError, ValueError):
            return UTC

    def today(self) -> date:
        return datetime.now(self.timezone).date()

    def utc_now(self) -> datetime:
        return datetime.now(UTC)


system_clock = SystemDateProvider()
