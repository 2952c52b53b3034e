"""Consecutive perfect-day streaks.

A perfect day is one on which the user has at least one effectively due task
and every due task has a record that is approved or skipped. Days with no due
tasks are passed over without extending or breaking a streak.
"""

import logging
from datetime import date, timedelta

from choreledger.core import db_client
from choreledger.core.clock import DateProvider, system_clock
from choreledger.core.config import settings
from choreledger.core.logging import span
from choreledger.domain.completion import STREAK_SATISFYING_STATUSES, CompletionRecord, CompletionStatus
from choreledger.domain.task import RecurringTask, ScheduleOverride
from choreledger.models.service_models import StreakSummary
from choreledger.services import schedule_service


logger = logging.getLogger(__name__)


async def _load_statuses(
    task_ids: list[str],
    start_date: date,
    end_date: date,
) -> dict[tuple[str, date], CompletionStatus]:
    if not task_ids:
        return {}

    task_clause = " || ".join(f'task_id = "{db_client.sanitize_param(task_id)}"' for task_id in task_ids)
    records = await db_client.list_all_records(
        collection="completion_records",
        filter_query=f'({task_clause}) && date >= "{start_date.isoformat()}" && date <= "{end_date.isoformat()}"',
    )
    completions = [CompletionRecord(**r) for r in records]
    return {(c.task_id, c.date): c.status for c in completions}


def is_perfect_day(
    day: date,
    tasks: list[RecurringTask],
    overrides: dict[tuple[str, date], ScheduleOverride],
    statuses: dict[tuple[str, date], CompletionStatus],
) -> bool | None:
    """Whether every task due on ``day`` was approved or skipped.

    Args:
        day: Date to evaluate
        tasks: Candidate tasks for the user
        overrides: Overrides keyed by (task_id, date)
        statuses: Completion statuses keyed by (task_id, date)

    Returns:
        True if perfect, False if not, None if nothing was due on ``day``
    """
    due = [t for t in tasks if schedule_service.is_effectively_due(t, day, overrides.get((t.id, day)))]
    if not due:
        return None
    return all(statuses.get((t.id, day)) in STREAK_SATISFYING_STATUSES for t in due)


def count_streaks(days: list[bool | None]) -> tuple[int, int]:
    """Current and longest runs over day outcomes ordered newest first.

    The current run ends at the first non-perfect day; the longest run keeps
    scanning the whole window.
    """
    current = 0
    longest = 0
    running = 0
    counting_current = True

    for outcome in days:
        if outcome is None:
            continue
        if outcome:
            running += 1
            if counting_current:
                current = running
            longest = max(longest, running)
        else:
            counting_current = False
            running = 0

    return current, longest


async def current_and_longest_streak(
    user_id: str,
    as_of_date: date | None = None,
    lookback_days: int | None = None,
    *,
    clock: DateProvider = system_clock,
) -> StreakSummary:
    """Compute the user's current and longest perfect-day streaks.

    Walks backward from ``as_of_date`` (default today) over ``lookback_days``
    days (default ``settings.streak_lookback_days``), ``as_of_date`` included.

    Args:
        user_id: User whose tasks are scanned
        as_of_date: Last day of the window
        lookback_days: Window length in days; zero or less returns zero streaks
        clock: Supplies today when ``as_of_date`` is omitted

    Returns:
        StreakSummary echoing the window it was computed over
    """
    with span("streak_service.current_and_longest_streak"):
        as_of = as_of_date or clock.today()
        lookback = lookback_days if lookback_days is not None else settings.streak_lookback_days
        if lookback <= 0:
            return StreakSummary(user_id=user_id, current=0, longest=0, as_of_date=as_of, lookback_days=lookback)

        window_start = as_of - timedelta(days=lookback - 1)
        tasks = await schedule_service.list_tasks_for_user(user_id)
        task_ids = [t.id for t in tasks]
        overrides = await schedule_service.list_overrides(task_ids, window_start, as_of)
        statuses = await _load_statuses(task_ids, window_start, as_of)

        outcomes = [
            is_perfect_day(as_of - timedelta(days=offset), tasks, overrides, statuses) for offset in range(lookback)
        ]
        current, longest = count_streaks(outcomes)

        logger.debug(
            "Calculated streaks",
            extra={"user_id": user_id, "as_of_date": as_of.isoformat(), "current": current, "longest": longest},
        )
        return StreakSummary(
            user_id=user_id,
            current=current,
            longest=longest,
            as_of_date=as_of,
            lookback_days=lookback,
        )
