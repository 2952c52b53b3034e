"""Pydantic models for requests that create ledger and completion records."""

from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from choreledger.domain.completion import CompletionStatus


class TransferCreate(BaseModel):
    """Request to move money between two accounts."""

    from_account_id: str = Field(..., description="Account debited")
    to_account_id: str = Field(..., description="Account credited")
    amount: Decimal = Field(..., description="Positive amount to move")
    reason: str = Field(default="", description="Shown in both transaction descriptions")


class LedgerEntryCreate(BaseModel):
    """Request to post a manual bonus, penalty or adjustment."""

    amount: Decimal = Field(..., description="Amount; penalties take the positive magnitude")
    description: str = Field(..., description="Why the entry was made")

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: str) -> str:
        return v.strip()


class CashOutCreate(BaseModel):
    """Request to pay money out of an account."""

    amount: Decimal = Field(..., description="Positive amount to pay out")
    notes: str | None = Field(default=None, description="Appended to the payout description")


class CompletionStatusUpdate(BaseModel):
    """Request to set a task's status on a date."""

    status: CompletionStatus = Field(..., description="New status")
    notes: str | None = Field(default=None, description="Free-form notes")
