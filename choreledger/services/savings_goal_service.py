"""Savings goal progress against a user's balance."""

from decimal import Decimal

from choreledger.core import db_client
from choreledger.core.money import ZERO, round_money
from choreledger.domain.savings_goal import SavingsGoal
from choreledger.models.service_models import SavingsGoalProgress
from choreledger.services import ledger_service


async def get_goals(user_id: str) -> list[SavingsGoal]:
    """Active goals for a user, primary first, then by priority."""
    records = await db_client.list_all_records(
        collection="savings_goals",
        filter_query=f'user_id = "{db_client.sanitize_param(user_id)}" && is_active = "1"',
        sort="is_primary DESC, priority ASC, id ASC",
    )
    return [SavingsGoal(**r) for r in records]


async def get_goals_with_progress(user_id: str) -> list[SavingsGoalProgress]:
    """Active goals with the fraction of each target the user's balance covers.

    Args:
        user_id: User whose goals are reported

    Returns:
        One SavingsGoalProgress per active goal, primary first; completed goals report full progress
    """
    goals = await get_goals(user_id)
    if not goals:
        return []

    balance = await ledger_service.get_user_balance(user_id)
    progress = []
    for goal in goals:
        fraction = Decimal("1") if goal.is_completed else min(max(balance, ZERO) / goal.target_amount, Decimal("1"))
        progress.append(
            SavingsGoalProgress(
                goal=goal,
                balance=balance,
                remaining=max(ZERO, round_money(goal.target_amount - balance)),
                progress=fraction.quantize(Decimal("0.0001")),
            )
        )
    return progress
