"""Weekly-frequency task progress and end-of-week shortfall penalties.

Both operations work on the Sunday-to-Saturday window from
``schedule_service.week_window``. Completed and approved records count toward
a task's weekly target.
"""

import logging
from datetime import date
from decimal import Decimal

from choreledger.core import db_client
from choreledger.core.clock import DateProvider, system_clock
from choreledger.core.config import settings
from choreledger.core.errors import ErrorCategory
from choreledger.core.locks import entity_lock
from choreledger.core.logging import log_money_movement, span
from choreledger.core.money import ZERO, round_money, sum_money
from choreledger.domain.completion import CompletionRecord, CompletionStatus
from choreledger.domain.ledger import LedgerTransaction, TransactionType
from choreledger.domain.task import RecurringTask, ScheduleKind
from choreledger.models.service_models import (
    WeeklyProgressSummary,
    WeeklyReconciliationResult,
    WeeklyShortfall,
    WeeklyTaskProgress,
)
from choreledger.services import ledger_service, profile_service, schedule_service


logger = logging.getLogger(__name__)

PROGRESS_STATUSES = (CompletionStatus.COMPLETED, CompletionStatus.APPROVED)


async def _list_weekly_tasks(user_id: str) -> list[RecurringTask]:
    tasks = await schedule_service.list_tasks_for_user(user_id)
    return [t for t in tasks if t.schedule_kind == ScheduleKind.WEEKLY_FREQUENCY]


async def _count_completions(task_ids: list[str], week_start: date, week_end: date) -> dict[str, int]:
    if not task_ids:
        return {}

    task_clause = " || ".join(f'task_id = "{db_client.sanitize_param(task_id)}"' for task_id in task_ids)
    status_clause = " || ".join(f'status = "{status}"' for status in PROGRESS_STATUSES)
    records = await db_client.list_all_records(
        collection="completion_records",
        filter_query=(
            f"({task_clause}) && ({status_clause})"
            f' && date >= "{week_start.isoformat()}" && date <= "{week_end.isoformat()}"'
        ),
    )
    counts = dict.fromkeys(task_ids, 0)
    for record in (CompletionRecord(**r) for r in records):
        counts[record.task_id] += 1
    return counts


def task_progress(task: RecurringTask, completed: int) -> WeeklyTaskProgress:
    """Summarize a weekly task's completions against its target.

    Earnings follow ``ledger_service.weekly_earning``: the first ``target``
    completions pay the full value and later ones (repeatable tasks only)
    halve each time.
    """
    target = task.weekly_target_count
    earnings = [ledger_service.weekly_earning(task, prior)[0] for prior in range(completed)]
    earned = sum_money(earnings[:target])
    bonus = sum_money(earnings[target:])
    quota_met = completed >= target

    next_bonus = ZERO
    if task.is_repeatable and quota_met:
        next_bonus = ledger_service.weekly_earning(task, completed)[0]

    return WeeklyTaskProgress(
        task_id=task.id,
        task_name=task.name,
        completed_count=completed,
        target_count=target,
        quota_met=quota_met,
        remaining_count=max(0, target - completed),
        percent_complete=round(completed / target * 100) if target > 0 else 100,
        earned_amount=earned,
        bonus_amount=bonus,
        total_earned=earned + bonus,
        potential_earnings=round_money(task.earn_value * target),
        can_do_more=task.is_repeatable or not quota_met,
        next_bonus_value=next_bonus,
    )


async def get_weekly_progress(
    user_id: str,
    as_of_date: date | None = None,
    *,
    clock: DateProvider = system_clock,
) -> WeeklyProgressSummary:
    """Report progress on a user's active weekly-frequency tasks for the week containing a date.

    Args:
        user_id: User whose assigned tasks are reported
        as_of_date: Any date in the week (default today)
        clock: Date source used when ``as_of_date`` is omitted

    Returns:
        WeeklyProgressSummary with one entry per weekly task and the projected totals
    """
    with span("weekly_service.get_weekly_progress"):
        as_of = as_of_date or clock.today()
        week_start, week_end = schedule_service.week_window(as_of)
        tasks = await _list_weekly_tasks(user_id)
        counts = await _count_completions([t.id for t in tasks], week_start, week_end)

        progress = [task_progress(t, counts.get(t.id, 0)) for t in tasks]
        return WeeklyProgressSummary(
            user_id=user_id,
            week_start=week_start,
            week_end=week_end,
            days_remaining=max(1, (week_end - as_of).days + 1),
            tasks=progress,
            tasks_completed=sum(1 for p in progress if p.quota_met),
            total_earned=sum_money([p.total_earned for p in progress]),
            total_potential=sum_money([p.potential_earnings for p in progress]),
        )


def shortfall_penalty(task: RecurringTask, missed: int) -> Decimal:
    """Penalty for ending the week ``missed`` completions short of the target."""
    return round_money(missed * task.earn_value * settings.weekly_incomplete_penalty_percent)


async def _charged_task_ids(user_id: str, week_end: date) -> set[str]:
    records = await db_client.list_all_records(
        collection="ledger_transactions",
        filter_query=(
            f'user_id = "{db_client.sanitize_param(user_id)}"'
            f' && type = "{TransactionType.PENALTY}"'
            f' && week_end_date = "{week_end.isoformat()}"'
        ),
    )
    charged = [LedgerTransaction(**r) for r in records]
    return {t.task_id for t in charged if t.task_id is not None}


async def reconcile_week(user_id: str, week_date: date) -> WeeklyReconciliationResult:
    """Charge penalties for the user's weekly tasks that fell short of their target.

    Each (task, week) is charged at most once, so running this again for the
    same week only charges tasks that were not charged before. Penalties are
    posted to the default account and dated the last day of the week. When
    the user has no active account the shortfalls are still reported but
    nothing is posted.

    Args:
        user_id: User to reconcile
        week_date: Any date in the week to close

    Returns:
        WeeklyReconciliationResult listing the shortfalls charged by this run
    """
    with span("weekly_service.reconcile_week"):
        week_start, week_end = schedule_service.week_window(week_date)

        if await profile_service.get_profile(user_id) is None:
            return WeeklyReconciliationResult(
                success=False,
                error_category=ErrorCategory.NOT_FOUND,
                message=f"No profile for user {user_id}",
                user_id=user_id,
                week_start=week_start,
                week_end=week_end,
            )

        async with entity_lock("weekly_reconciliation", user_id), db_client.transaction():
            progress = await get_weekly_progress(user_id, week_end)
            account = await profile_service.get_default_account(user_id)
            already_charged = await _charged_task_ids(user_id, week_end)
            tasks = {t.id: t for t in await _list_weekly_tasks(user_id)}

            shortfalls: list[WeeklyShortfall] = []
            for item in progress.tasks:
                if item.quota_met or item.task_id in already_charged:
                    continue

                missed = item.target_count - item.completed_count
                penalty = shortfall_penalty(tasks[item.task_id], missed)
                if penalty <= ZERO:
                    continue

                transaction = None
                if account is not None:
                    record = await db_client.create_record(
                        collection="ledger_transactions",
                        data={
                            "account_id": account.id,
                            "user_id": user_id,
                            "task_id": item.task_id,
                            "week_end_date": week_end,
                            "amount": -penalty,
                            "type": TransactionType.PENALTY,
                            "description": (
                                f"Incomplete: {item.task_name} ({item.completed_count}/{item.target_count})"
                            ),
                            "transaction_date": week_end,
                        },
                    )
                    transaction = LedgerTransaction(**record)
                    log_money_movement(
                        logger,
                        "Charged weekly shortfall",
                        account_id=account.id,
                        amount=-penalty,
                        task_id=item.task_id,
                        week_end_date=week_end.isoformat(),
                    )

                shortfalls.append(
                    WeeklyShortfall(
                        task_id=item.task_id,
                        task_name=item.task_name,
                        target_count=item.target_count,
                        completed_count=item.completed_count,
                        missed_count=missed,
                        penalty_amount=penalty,
                        transaction=transaction,
                    )
                )

        if shortfalls and account is None:
            logger.warning(
                "No active ledger account for weekly shortfalls",
                extra={"user_id": user_id, "week_end_date": week_end.isoformat()},
            )

        total = sum_money([s.penalty_amount for s in shortfalls])
        return WeeklyReconciliationResult(
            success=True,
            message=f"{len(shortfalls)} weekly task(s) short of target",
            user_id=user_id,
            week_start=week_start,
            week_end=week_end,
            shortfalls=shortfalls,
            total_penalty=total,
        )


async def run_weekly_reconciliation(week_date: date) -> list[WeeklyReconciliationResult]:
    """Close the week for every active profile.

    A failure for one user is logged and does not stop the others.

    Args:
        week_date: Any date in the week to close

    Returns:
        One result per profile that reconciled without a store failure
    """
    with span("weekly_service.run_weekly_reconciliation"):
        results = []
        for profile in await profile_service.list_profiles():
            try:
                results.append(await reconcile_week(profile.user_id, week_date))
            except RuntimeError as e:
                logger.error(
                    "Weekly reconciliation failed",
                    extra={"user_id": profile.user_id, "error": str(e)},
                )

        logger.info(
            "Weekly reconciliation complete",
            extra={
                "week_date": week_date.isoformat(),
                "processed": len(results),
                "with_penalties": sum(1 for r in results if r.shortfalls),
            },
        )
        return results
