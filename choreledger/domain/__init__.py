"""Domain models and DTOs."""

from choreledger.domain.achievement import Achievement, BonusConfig, BonusGrant, BonusType, parse_bonus_config
from choreledger.domain.completion import CompletionRecord, CompletionStatus
from choreledger.domain.ledger import ChildProfile, LedgerAccount, LedgerTransaction, TransactionType
from choreledger.domain.savings_goal import SavingsGoal
from choreledger.domain.task import DaysOfWeek, OverrideType, RecurringTask, ScheduleKind, ScheduleOverride


__all__ = [
    "Achievement",
    "BonusConfig",
    "BonusGrant",
    "BonusType",
    "ChildProfile",
    "CompletionRecord",
    "CompletionStatus",
    "DaysOfWeek",
    "LedgerAccount",
    "LedgerTransaction",
    "OverrideType",
    "RecurringTask",
    "SavingsGoal",
    "ScheduleKind",
    "ScheduleOverride",
    "TransactionType",
    "parse_bonus_config",
]
