"""Pytest configuration and fixtures for unit tests.

Every test that touches the store gets its own SQLite file with the schema
applied, so services run against real queries rather than mocks.
"""

from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from typing import Any

import pytest

from choreledger.core import db_client
from choreledger.core.config import settings
from choreledger.domain.achievement import Achievement, BonusType
from choreledger.domain.completion import CompletionRecord, CompletionStatus
from choreledger.domain.ledger import ChildProfile, LedgerAccount
from choreledger.domain.task import DaysOfWeek, RecurringTask, ScheduleKind
from choreledger.services import profile_service


# Wednesday; its week runs Sunday 2026-01-11 through Saturday 2026-01-17
TODAY = date(2026, 1, 14)
NOW = datetime(2026, 1, 14, 15, 0, tzinfo=UTC)

KID_USER_ID = "kid-alex"


class FixedDateProvider:
    """Clock pinned to a fixed instant that tests can move forward."""

    def __init__(self, today: date = TODAY, now: datetime = NOW) -> None:
        self._today = today
        self._now = now

    def today(self) -> date:
        return self._today

    def utc_now(self) -> datetime:
        return self._now

    def advance(self, *, days: int = 0, hours: int = 0) -> None:
        delta = timedelta(days=days, hours=hours)
        self._now += delta
        self._today = self._now.date()


@pytest.fixture
def clock() -> FixedDateProvider:
    """Provides a clock fixed at 2026-01-14 15:00 UTC."""
    return FixedDateProvider()


@pytest.fixture
async def db(tmp_path, monkeypatch):
    """Points the store at a fresh SQLite file with the schema initialized."""
    monkeypatch.setattr(settings, "sqlite_db_path", str(tmp_path / "choreledger-test.db"))
    await db_client.init_db()
    yield
    await db_client.close_connection()


@pytest.fixture
async def kid(db) -> ChildProfile:
    """A profile with its default spending account."""
    return await profile_service.create_profile(KID_USER_ID, "Alex")


@pytest.fixture
async def kid_account(kid) -> LedgerAccount:
    account = await profile_service.get_default_account(kid.user_id)
    assert account is not None
    return account


@pytest.fixture
def make_task(db):
    """Factory creating recurring tasks assigned to the kid by default."""

    async def _make(**overrides: Any) -> RecurringTask:
        data: dict[str, Any] = {
            "assigned_user_id": KID_USER_ID,
            "name": "Feed the dog",
            "earn_value": Decimal("1.00"),
            "penalty_value": Decimal("0.00"),
            "schedule_kind": ScheduleKind.SPECIFIC_DAYS,
            "active_days": int(DaysOfWeek.EVERY_DAY),
            "weekly_target_count": 0,
            "start_date": date(2026, 1, 1),
            "is_repeatable": False,
            "is_active": True,
        }
        data.update(overrides)
        record = await db_client.create_record(collection="tasks", data=data)
        return RecurringTask(**record)

    return _make


@pytest.fixture
def make_record(db):
    """Factory creating completion records without reconciling them."""

    async def _make(task: RecurringTask, day: date, status: CompletionStatus) -> CompletionRecord:
        record = await db_client.create_record(
            collection="completion_records",
            data={"task_id": task.id, "date": day, "status": status},
        )
        return CompletionRecord(**record)

    return _make


@pytest.fixture
def make_achievement(db):
    """Factory creating achievements with an optional bonus."""
    counter = {"n": 0}

    async def _make(
        bonus_type: BonusType | None = None,
        bonus_config: dict[str, Any] | str | None = None,
        **overrides: Any,
    ) -> Achievement:
        counter["n"] += 1
        data: dict[str, Any] = {
            "code": f"achievement_{counter['n']}",
            "name": f"Achievement {counter['n']}",
            "criteria": "test",
            "bonus_type": bonus_type,
            "bonus_config": bonus_config if bonus_config is not None else {},
        }
        data.update(overrides)
        record = await db_client.create_record(collection="achievements", data=data)
        return Achievement(**record)

    return _make
