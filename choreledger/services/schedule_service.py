"""Schedule evaluation: whether a recurring task is due on a date.

The base schedule comes from the task's active-day set and date range. A
per-date override takes precedence over it for active tasks: ``add`` and
``move`` make the task due, ``remove`` makes it not due. An inactive task is
never due.
"""

import logging
from datetime import date, timedelta

from choreledger.core import db_client
from choreledger.core.clock import DateProvider, system_clock
from choreledger.core.errors import ErrorCategory
from choreledger.core.logging import span
from choreledger.domain.task import DaysOfWeek, OverrideType, RecurringTask, ScheduleOverride
from choreledger.models.service_models import DueCheck, OverrideToggleResult


logger = logging.getLogger(__name__)

# date.weekday() -> days since Sunday
_DAYS_SINCE_SUNDAY = {0: 1, 1: 2, 2: 3, 3: 4, 4: 5, 5: 6, 6: 0}


def is_due(task: RecurringTask, day: date) -> bool:
    """Whether the base schedule has the task due on ``day``, ignoring overrides."""
    if not task.is_active:
        return False
    if task.start_date is not None and day < task.start_date:
        return False
    if task.end_date is not None and day > task.end_date:
        return False
    return bool(task.days & DaysOfWeek.for_date(day))


def week_window(day: date) -> tuple[date, date]:
    """Return the Sunday-to-Saturday week containing ``day``."""
    week_start = day - timedelta(days=_DAYS_SINCE_SUNDAY[day.weekday()])
    return week_start, week_start + timedelta(days=6)


def is_effectively_due(
    task: RecurringTask,
    day: date,
    override: ScheduleOverride | OverrideType | None = None,
) -> bool:
    """Whether the task is due on ``day`` once an override for that date is taken into account.

    An inactive task is never due. Otherwise an ``add`` or ``move`` override makes
    the task due and a ``remove`` override makes it not due, whatever the base
    schedule says.

    Args:
        task: Task to evaluate
        day: Date to evaluate
        override: Override for the date, or just its type, if any

    Returns:
        True if the task is due on ``day``
    """
    if not task.is_active:
        return False
    override_type = override.override_type if isinstance(override, ScheduleOverride) else override
    if override_type in (OverrideType.ADD, OverrideType.MOVE):
        return True
    if override_type == OverrideType.REMOVE:
        return False
    return is_due(task, day)


async def get_task(task_id: str) -> RecurringTask:
    """Load a task by ID.

    Raises:
        KeyError: If the task does not exist
    """
    record = await db_client.get_record(collection="tasks", record_id=task_id)
    return RecurringTask(**record)


async def list_tasks_for_user(user_id: str, *, include_inactive: bool = False) -> list[RecurringTask]:
    """List tasks assigned to a user."""
    filter_query = f'assigned_user_id = "{db_client.sanitize_param(user_id)}"'
    if not include_inactive:
        filter_query += ' && is_active = "1"'
    records = await db_client.list_all_records(collection="tasks", filter_query=filter_query)
    return [RecurringTask(**r) for r in records]


async def get_override(task_id: str, day: date) -> ScheduleOverride | None:
    """Get the override for a task on a date, if any."""
    record = await db_client.get_first_record(
        collection="schedule_overrides",
        filter_query=(
            f'task_id = "{db_client.sanitize_param(task_id)}" && date = "{db_client.sanitize_param(day.isoformat())}"'
        ),
    )
    return ScheduleOverride(**record) if record else None


async def list_overrides(
    task_ids: list[str],
    start_date: date,
    end_date: date,
) -> dict[tuple[str, date], ScheduleOverride]:
    """Get overrides for the given tasks within an inclusive date range, keyed by (task_id, date)."""
    if not task_ids:
        return {}

    task_clause = " || ".join(f'task_id = "{db_client.sanitize_param(task_id)}"' for task_id in task_ids)
    filter_query = (
        f"({task_clause})"
        f' && date >= "{db_client.sanitize_param(start_date.isoformat())}"'
        f' && date <= "{db_client.sanitize_param(end_date.isoformat())}"'
    )
    records = await db_client.list_all_records(collection="schedule_overrides", filter_query=filter_query)
    overrides = [ScheduleOverride(**r) for r in records]
    return {(o.task_id, o.date): o for o in overrides}


async def check_due(task_id: str, day: date) -> DueCheck:
    """Evaluate a task's schedule on a date, including any override.

    Args:
        task_id: Task to evaluate
        day: Date to evaluate

    Returns:
        DueCheck with both the effective and the base-schedule answer

    Raises:
        KeyError: If the task does not exist
    """
    task = await get_task(task_id)
    override = await get_override(task_id, day)
    return DueCheck(
        task_id=task.id,
        date=day,
        is_due=is_effectively_due(task, day, override),
        scheduled=is_due(task, day),
        override_type=override.override_type if override else None,
    )


async def toggle_override(
    task_id: str,
    day: date,
    *,
    created_by_user_id: str | None = None,
) -> OverrideToggleResult:
    """Flip whether a task is due on one date.

    An existing override is removed, restoring the base schedule. Otherwise a
    ``remove`` override is created when the base schedule has the task due and
    an ``add`` override when it does not.

    Args:
        task_id: Task whose schedule changes
        day: Date to flip
        created_by_user_id: User recorded as the author of a new override

    Returns:
        OverrideToggleResult with the created override, or ``removed`` set when one was deleted
    """
    with span("schedule_service.toggle_override"):
        try:
            task = await get_task(task_id)
        except KeyError:
            return OverrideToggleResult(
                success=False,
                error_category=ErrorCategory.NOT_FOUND,
                message=f"Task {task_id} not found",
            )

        async with db_client.transaction():
            existing = await get_override(task_id, day)
            if existing is not None:
                await db_client.delete_record(collection="schedule_overrides", record_id=existing.id)
                logger.info(
                    "Removed schedule override",
                    extra={"task_id": task_id, "date": day.isoformat(), "override_type": existing.override_type},
                )
                return OverrideToggleResult(success=True, message="Override removed", removed=True)

            override_type = OverrideType.REMOVE if is_due(task, day) else OverrideType.ADD
            record = await db_client.create_record(
                collection="schedule_overrides",
                data={
                    "task_id": task.id,
                    "date": day,
                    "override_type": override_type,
                    "created_by_user_id": created_by_user_id,
                },
            )

        logger.info(
            "Created schedule override",
            extra={"task_id": task_id, "date": day.isoformat(), "override_type": override_type},
        )
        return OverrideToggleResult(
            success=True,
            message=f"Task {'added to' if override_type == OverrideType.ADD else 'removed from'} {day.isoformat()}",
            override=ScheduleOverride(**record),
        )


async def get_due_tasks_for_user(
    user_id: str,
    day: date | None = None,
    *,
    clock: DateProvider = system_clock,
) -> list[RecurringTask]:
    """List the active tasks assigned to a user that are due on ``day`` (default today)."""
    with span("schedule_service.get_due_tasks_for_user"):
        day = day or clock.today()
        tasks = await list_tasks_for_user(user_id)
        overrides = await list_overrides([t.id for t in tasks], day, day)
        return [t for t in tasks if is_effectively_due(t, day, overrides.get((t.id, day)))]
