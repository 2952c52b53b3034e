"""Savings goal domain model."""

from decimal import Decimal

from pydantic import BaseModel, Field


class SavingsGoal(BaseModel):
    """Something a user is saving toward. Display only; never moves money."""

    id: str
    user_id: str
    name: str
    target_amount: Decimal = Field(..., gt=0)
    priority: int = Field(default=0, description="Lower values are shown first")
    is_primary: bool = False
    is_completed: bool = False
    is_active: bool = True
