"""HTTP interface to the ledger, bonus, streak and schedule services."""

import logging
from datetime import date
from typing import TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from choreledger.core.clock import DateProvider, system_clock
from choreledger.core.config import constants
from choreledger.core.errors import http_status_for
from choreledger.domain.achievement import BonusGrant, BonusType
from choreledger.domain.create_models import CashOutCreate, CompletionStatusUpdate, LedgerEntryCreate, TransferCreate
from choreledger.domain.ledger import LedgerTransaction
from choreledger.models.service_models import (
    AccountBalanceSummary,
    BonusSummary,
    DueCheck,
    OverrideToggleResult,
    ReconcileResult,
    SavingsGoalProgress,
    ServiceResult,
    StreakSummary,
    TransactionResult,
    TransactionStats,
    TransferResult,
    WeeklyProgressSummary,
    WeeklyReconciliationResult,
)
from choreledger.services import (
    bonus_service,
    completion_service,
    ledger_service,
    payout_service,
    savings_goal_service,
    schedule_service,
    streak_service,
    weekly_service,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ledger", tags=["ledger"])

ResultT = TypeVar("ResultT", bound=ServiceResult)


class ConsumeResponse(BaseModel):
    consumed: bool


class ExpireResponse(BaseModel):
    expired: int


def get_clock() -> DateProvider:
    """Clock dependency; overridden in tests."""
    return system_clock


def _raise_for_failure(result: ResultT) -> ResultT:
    if not result.success:
        logger.info(
            "ledger_request_failed",
            extra={"error_category": result.error_category, "error_message": result.message},
        )
        raise HTTPException(status_code=http_status_for(result.error_category), detail=result.message)
    return result


def _not_found(e: KeyError) -> HTTPException:
    return HTTPException(status_code=constants.HTTP_NOT_FOUND, detail=str(e.args[0]) if e.args else "Not found")


@router.post("/completions/{record_id}/reconcile", response_model=ReconcileResult)
async def reconcile_completion(record_id: str, clock: DateProvider = Depends(get_clock)) -> ReconcileResult:
    """Bring the ledger in line with a completion record."""
    return _raise_for_failure(await ledger_service.reconcile(record_id, clock=clock))


@router.put("/tasks/{task_id}/completions/{day}", response_model=ReconcileResult)
async def set_completion_status(
    task_id: str,
    day: date,
    update: CompletionStatusUpdate,
    clock: DateProvider = Depends(get_clock),
) -> ReconcileResult:
    """Set a task's status for a date and reconcile it."""
    result = await completion_service.set_status(task_id, day, update.status, update.notes, clock=clock)
    return _raise_for_failure(result)


@router.post("/transfers", response_model=TransferResult)
async def create_transfer(transfer: TransferCreate, clock: DateProvider = Depends(get_clock)) -> TransferResult:
    """Move money between two accounts."""
    result = await ledger_service.transfer(
        transfer.from_account_id,
        transfer.to_account_id,
        transfer.amount,
        transfer.reason,
        clock=clock,
    )
    return _raise_for_failure(result)


@router.get("/accounts/{account_id}/balance", response_model=AccountBalanceSummary)
async def get_account_balance(account_id: str, clock: DateProvider = Depends(get_clock)) -> AccountBalanceSummary:
    """Balance and cash-out eligibility of an account."""
    try:
        return await payout_service.get_account_balance_summary(account_id, clock=clock)
    except KeyError as e:
        raise _not_found(e) from e


@router.get("/accounts/{account_id}/transactions", response_model=list[LedgerTransaction])
async def list_account_transactions(
    account_id: str,
    from_date: date | None = None,
    to_date: date | None = None,
) -> list[LedgerTransaction]:
    """An account's transactions, newest first."""
    return await ledger_service.get_account_transactions(account_id, from_date=from_date, to_date=to_date)


@router.get("/accounts/{account_id}/stats", response_model=TransactionStats)
async def get_account_stats(
    account_id: str,
    from_date: date | None = None,
    to_date: date | None = None,
) -> TransactionStats:
    """Totals per transaction type for an account."""
    return await ledger_service.get_account_transaction_stats(account_id, from_date=from_date, to_date=to_date)


@router.post("/accounts/{account_id}/cash-out", response_model=TransactionResult)
async def cash_out(
    account_id: str,
    request: CashOutCreate,
    clock: DateProvider = Depends(get_clock),
) -> TransactionResult:
    """Pay money out of an account."""
    return _raise_for_failure(await payout_service.cash_out(account_id, request.amount, request.notes, clock=clock))


@router.post("/accounts/{account_id}/bonuses", response_model=TransactionResult)
async def add_bonus(
    account_id: str,
    entry: LedgerEntryCreate,
    clock: DateProvider = Depends(get_clock),
) -> TransactionResult:
    return _raise_for_failure(await payout_service.add_bonus(account_id, entry.amount, entry.description, clock=clock))


@router.post("/accounts/{account_id}/penalties", response_model=TransactionResult)
async def add_penalty(
    account_id: str,
    entry: LedgerEntryCreate,
    clock: DateProvider = Depends(get_clock),
) -> TransactionResult:
    result = await payout_service.add_penalty(account_id, entry.amount, entry.description, clock=clock)
    return _raise_for_failure(result)


@router.post("/accounts/{account_id}/adjustments", response_model=TransactionResult)
async def add_adjustment(
    account_id: str,
    entry: LedgerEntryCreate,
    clock: DateProvider = Depends(get_clock),
) -> TransactionResult:
    result = await payout_service.add_adjustment(account_id, entry.amount, entry.description, clock=clock)
    return _raise_for_failure(result)


@router.get("/users/{user_id}/bonuses", response_model=BonusSummary)
async def get_bonus_summary(user_id: str, clock: DateProvider = Depends(get_clock)) -> BonusSummary:
    """Combined effect of a user's active bonuses."""
    return await bonus_service.get_active_summary(user_id, clock=clock)


@router.post("/users/{user_id}/bonuses/{bonus_type}/consume", response_model=ConsumeResponse)
async def consume_bonus(
    user_id: str,
    bonus_type: BonusType,
    clock: DateProvider = Depends(get_clock),
) -> ConsumeResponse:
    """Use one charge of a one-time bonus."""
    consumed = await bonus_service.consume_one_time_use(user_id, bonus_type, clock=clock)
    return ConsumeResponse(consumed=consumed)


@router.post("/users/{user_id}/achievements/{code}/grant", response_model=BonusGrant | None)
async def grant_achievement_bonus(
    user_id: str,
    code: str,
    clock: DateProvider = Depends(get_clock),
) -> BonusGrant | None:
    """Grant the bonus an achievement unlocks. Granting twice returns the first grant."""
    try:
        return await bonus_service.grant_by_code(user_id, code, clock=clock)
    except KeyError as e:
        raise _not_found(e) from e


@router.post("/bonuses/expire", response_model=ExpireResponse)
async def expire_bonuses(clock: DateProvider = Depends(get_clock)) -> ExpireResponse:
    """Deactivate every bonus whose expiry has passed."""
    return ExpireResponse(expired=await bonus_service.expire_stale(clock=clock))


@router.get("/users/{user_id}/streak", response_model=StreakSummary)
async def get_streak(
    user_id: str,
    as_of: date | None = None,
    lookback_days: int | None = Query(default=None, ge=1),
    clock: DateProvider = Depends(get_clock),
) -> StreakSummary:
    """Current and longest perfect-day streaks."""
    return await streak_service.current_and_longest_streak(user_id, as_of, lookback_days, clock=clock)


@router.get("/users/{user_id}/weekly-progress", response_model=WeeklyProgressSummary)
async def get_weekly_progress(
    user_id: str,
    day: date | None = Query(default=None, alias="date"),
    clock: DateProvider = Depends(get_clock),
) -> WeeklyProgressSummary:
    """Weekly-frequency task progress for the week containing a date (default today)."""
    return await weekly_service.get_weekly_progress(user_id, day, clock=clock)


@router.post("/users/{user_id}/weekly-reconciliation", response_model=WeeklyReconciliationResult)
async def reconcile_user_week(
    user_id: str,
    day: date | None = Query(default=None, alias="date"),
    clock: DateProvider = Depends(get_clock),
) -> WeeklyReconciliationResult:
    """Charge one user's shortfall penalties for a week (default the current week)."""
    return _raise_for_failure(await weekly_service.reconcile_week(user_id, day or clock.today()))


@router.post("/weekly-reconciliation", response_model=list[WeeklyReconciliationResult])
async def reconcile_household_week(
    day: date | None = Query(default=None, alias="date"),
    clock: DateProvider = Depends(get_clock),
) -> list[WeeklyReconciliationResult]:
    """Charge shortfall penalties for every active profile."""
    return await weekly_service.run_weekly_reconciliation(day or clock.today())


@router.get("/users/{user_id}/savings-goals", response_model=list[SavingsGoalProgress])
async def get_savings_goals(user_id: str) -> list[SavingsGoalProgress]:
    return await savings_goal_service.get_goals_with_progress(user_id)


@router.get("/tasks/{task_id}/due", response_model=DueCheck)
async def check_task_due(
    task_id: str,
    day: date | None = Query(default=None, alias="date"),
    clock: DateProvider = Depends(get_clock),
) -> DueCheck:
    """Whether a task is due on a date (default today), overrides included."""
    try:
        return await schedule_service.check_due(task_id, day or clock.today())
    except KeyError as e:
        raise _not_found(e) from e


@router.post("/tasks/{task_id}/overrides/{day}/toggle", response_model=OverrideToggleResult)
async def toggle_task_override(
    task_id: str,
    day: date,
    created_by_user_id: str | None = None,
) -> OverrideToggleResult:
    """Flip whether a task is due on one date."""
    result = await schedule_service.toggle_override(task_id, day, created_by_user_id=created_by_user_id)
    return _raise_for_failure(result)
