"""Pydantic models for service layer return types.

These models provide type safety at service boundaries, converting database
dictionaries into typed objects with validation. Expected business failures
are reported through ``success`` / ``error_category`` rather than raised.
"""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field

from choreledger.core.errors import ErrorCategory
from choreledger.domain.achievement import BonusType
from choreledger.domain.ledger import LedgerTransaction
from choreledger.domain.savings_goal import SavingsGoal
from choreledger.domain.task import ScheduleOverride


class ServiceResult(BaseModel):
    """Outcome of a state-changing service operation."""

    success: bool
    message: str = ""
    error_category: ErrorCategory | None = None


class ReconcileResult(ServiceResult):
    """Outcome of reconciling a completion record with the ledger."""

    transaction: LedgerTransaction | None = None
    created: bool = False
    updated: bool = False
    removed: bool = False


class TransferResult(ServiceResult):
    """Outcome of an account-to-account transfer."""

    transfer_group_id: str | None = None
    debit: LedgerTransaction | None = None
    credit: LedgerTransaction | None = None


class TransactionResult(ServiceResult):
    """Outcome of posting a single manual ledger entry."""

    transaction: LedgerTransaction | None = None


class OverrideToggleResult(ServiceResult):
    """Outcome of toggling a task's schedule on one date."""

    override: ScheduleOverride | None = None
    removed: bool = False


class ActiveBonusDetail(BaseModel):
    """One active bonus grant, for display."""

    grant_id: str
    achievement_name: str
    description: str
    bonus_type: BonusType
    expires_at: str | None = None
    remaining_uses: int | None = None


class BonusSummary(BaseModel):
    """Combined effect of a user's active bonuses, with caps applied."""

    point_multiplier: Decimal = Decimal("1")
    penalty_reduction: Decimal = Decimal("0")
    forgiveness_uses_available: int = 0
    double_point_days_available: int = 0
    streak_protection_available: int = 0
    reminders_suppressed: bool = False
    cash_out_threshold_reduction: Decimal = Decimal("0.00")
    trust_level_increase: int = 0
    profile_badges: list[str] = Field(default_factory=list)
    active_bonuses: list[ActiveBonusDetail] = Field(default_factory=list)


class BonusApplication(BaseModel):
    """Result of applying a bonus modifier to an amount."""

    applied: bool
    original_value: Decimal
    modified_value: Decimal
    description: str = ""


class StreakSummary(BaseModel):
    """Current and longest run of perfect days."""

    user_id: str
    current: int
    longest: int
    as_of_date: date
    lookback_days: int


class TransactionStats(BaseModel):
    """Totals per transaction type for one account."""

    account_id: str
    total_earned: Decimal
    total_deducted: Decimal
    total_bonus: Decimal
    total_penalty: Decimal
    total_payout: Decimal
    total_adjustment: Decimal
    transfers_in: Decimal
    transfers_out: Decimal
    net: Decimal
    transaction_count: int


class AccountBalanceSummary(BaseModel):
    """Balance and cash-out eligibility for one account."""

    account_id: str
    account_name: str
    balance: Decimal
    cash_out_threshold: Decimal
    can_cash_out: bool


class SavingsGoalProgress(BaseModel):
    """Savings goal with progress against the user's balance."""

    goal: SavingsGoal
    balance: Decimal
    remaining: Decimal
    progress: Decimal = Field(..., description="Fraction of the target reached, capped at 1")


class DueCheck(BaseModel):
    """Whether a task is due on a date, and why."""

    task_id: str
    date: date
    is_due: bool
    scheduled: bool
    override_type: str | None = None


class WeeklyTaskProgress(BaseModel):
    """One weekly-frequency task's completions against its target for a week."""

    task_id: str
    task_name: str
    completed_count: int
    target_count: int
    quota_met: bool
    remaining_count: int
    percent_complete: int = Field(..., description="Completed over target as a whole percentage; may exceed 100")
    earned_amount: Decimal = Field(..., description="Earnings from completions up to the target")
    bonus_amount: Decimal = Field(..., description="Diminishing earnings from completions past the target")
    total_earned: Decimal
    potential_earnings: Decimal = Field(..., description="Earn value times the weekly target")
    can_do_more: bool
    next_bonus_value: Decimal


class WeeklyProgressSummary(BaseModel):
    """Weekly-frequency progress for one user."""

    user_id: str
    week_start: date
    week_end: date
    days_remaining: int = Field(..., description="Days left in the week, counting the as-of date")
    tasks: list[WeeklyTaskProgress] = Field(default_factory=list)
    tasks_completed: int = 0
    total_earned: Decimal = Decimal("0.00")
    total_potential: Decimal = Decimal("0.00")

    @property
    def is_last_day(self) -> bool:
        return self.days_remaining == 1


class WeeklyShortfall(BaseModel):
    """A weekly-frequency task that ended the week short of its target."""

    task_id: str
    task_name: str
    target_count: int
    completed_count: int
    missed_count: int
    penalty_amount: Decimal
    transaction: LedgerTransaction | None = None


class WeeklyReconciliationResult(ServiceResult):
    """Penalties charged for one user's weekly shortfalls."""

    user_id: str
    week_start: date
    week_end: date
    shortfalls: list[WeeklyShortfall] = Field(default_factory=list)
    total_penalty: Decimal = Decimal("0.00")
