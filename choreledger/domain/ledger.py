"""Ledger account, transaction and profile domain models."""

from datetime import date
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, Field


class TransactionType(StrEnum):
    """Kind of ledger entry."""

    EARNING = "earning"
    DEDUCTION = "deduction"
    BONUS = "bonus"
    PENALTY = "penalty"
    PAYOUT = "payout"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"


class ChildProfile(BaseModel):
    """Profile owning one or more ledger accounts."""

    id: str
    user_id: str = Field(..., description="External identity of the profile's user")
    display_name: str
    is_active: bool = True


class LedgerAccount(BaseModel):
    """Money account belonging to a profile."""

    id: str = Field(..., description="Unique account ID from database")
    profile_id: str = Field(..., description="Owning profile ID")
    name: str = Field(..., description="Account name (e.g., 'Spending', 'Savings')")
    is_default: bool = Field(default=False, description="Receives task earnings and deductions")
    is_active: bool = Field(default=True, description="Inactive accounts are never resolved")


class LedgerTransaction(BaseModel):
    """Signed money movement on an account."""

    id: str = Field(..., description="Unique transaction ID from database")
    account_id: str = Field(..., description="Account the amount is posted to")
    user_id: str | None = Field(default=None, description="User the entry belongs to")
    completion_record_id: str | None = Field(
        default=None,
        description="Completion record this entry was reconciled from (at most one entry per record)",
    )
    amount: Decimal = Field(..., description="Signed amount; positive credits the account")
    type: TransactionType = Field(..., description="Entry kind")
    description: str = Field(default="", description="Human-readable description")
    transaction_date: date = Field(..., description="Business date of the entry")
    transfer_group_id: str | None = Field(default=None, description="Pairs the two legs of a transfer")
    task_id: str | None = Field(default=None, description="Weekly-frequency task a shortfall penalty was charged for")
    week_end_date: date | None = Field(default=None, description="Week a shortfall penalty covers")
    created: str = Field(default="", description="Creation timestamp (ISO format)")
    updated: str = Field(default="", description="Last update timestamp (ISO format)")
