"""Recurring task and schedule override domain models."""

from datetime import date
from decimal import Decimal
from enum import IntFlag, StrEnum

from pydantic import BaseModel, Field


class ScheduleKind(StrEnum):
    """How a recurring task decides which days it is due."""

    SPECIFIC_DAYS = "specific_days"  # Due on each day set in active_days
    WEEKLY_FREQUENCY = "weekly_frequency"  # Due any available day until the weekly target is met


class DaysOfWeek(IntFlag):
    """Seven-bit day set, Sunday first."""

    NONE = 0
    SUNDAY = 1
    MONDAY = 2
    TUESDAY = 4
    WEDNESDAY = 8
    THURSDAY = 16
    FRIDAY = 32
    SATURDAY = 64

    WEEKDAYS = MONDAY | TUESDAY | WEDNESDAY | THURSDAY | FRIDAY
    WEEKENDS = SATURDAY | SUNDAY
    EVERY_DAY = WEEKDAYS | WEEKENDS

    @classmethod
    def for_date(cls, day: date) -> "DaysOfWeek":
        """Return the single bit for the weekday of ``day``."""
        return _WEEKDAY_BITS[day.weekday()]


# date.weekday(): Monday == 0 .. Sunday == 6
_WEEKDAY_BITS: dict[int, DaysOfWeek] = {
    0: DaysOfWeek.MONDAY,
    1: DaysOfWeek.TUESDAY,
    2: DaysOfWeek.WEDNESDAY,
    3: DaysOfWeek.THURSDAY,
    4: DaysOfWeek.FRIDAY,
    5: DaysOfWeek.SATURDAY,
    6: DaysOfWeek.SUNDAY,
}


class OverrideType(StrEnum):
    """One-off change to a task's schedule on a single date."""

    ADD = "add"
    REMOVE = "remove"
    MOVE = "move"  # Moved here from another day; due on this date


class RecurringTask(BaseModel):
    """Recurring task definition."""

    id: str = Field(..., description="Unique task ID from database")
    assigned_user_id: str | None = Field(default=None, description="User the task is assigned to")
    name: str = Field(..., description="Task name (e.g., 'Feed the dog')")
    description: str = Field(default="", description="Detailed task description")
    earn_value: Decimal = Field(default=Decimal("0.00"), ge=0, description="Amount earned on approval")
    penalty_value: Decimal = Field(default=Decimal("0.00"), ge=0, description="Amount deducted when missed")
    schedule_kind: ScheduleKind = Field(default=ScheduleKind.SPECIFIC_DAYS, description="Scheduling mode")
    active_days: int = Field(default=0, ge=0, le=127, description="DaysOfWeek bit set of available days")
    weekly_target_count: int = Field(default=0, ge=0, description="Completions per week for weekly tasks")
    start_date: date | None = Field(default=None, description="First date the task is scheduled")
    end_date: date | None = Field(default=None, description="Last date the task is scheduled")
    is_repeatable: bool = Field(default=False, description="Whether completions beyond the target still pay")
    is_active: bool = Field(default=True, description="Inactive tasks are never due")

    @property
    def days(self) -> DaysOfWeek:
        return DaysOfWeek(self.active_days)


class ScheduleOverride(BaseModel):
    """Per-date schedule override for a task."""

    id: str
    task_id: str
    date: date
    override_type: OverrideType
    created_by_user_id: str | None = None
    created: str = ""
