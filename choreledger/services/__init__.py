from choreledger.services import (
    bonus_service,
    completion_service,
    ledger_service,
    payout_service,
    profile_service,
    savings_goal_service,
    schedule_service,
    streak_service,
    weekly_service,
)


__all__ = [
    "bonus_service",
    "completion_service",
    "ledger_service",
    "payout_service",
    "profile_service",
    "savings_goal_service",
    "schedule_service",
    "streak_service",
    "weekly_service",
]
