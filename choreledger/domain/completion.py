"""Completion record domain models and enums."""

from datetime import date
from enum import StrEnum

from pydantic import BaseModel, Field


class CompletionStatus(StrEnum):
    """Status of a task on a single date."""

    PENDING = "pending"
    COMPLETED = "completed"  # Done, awaiting approval
    APPROVED = "approved"
    MISSED = "missed"
    SKIPPED = "skipped"  # Excused; counts toward a perfect day
    HELP_REQUESTED = "help_requested"


# Statuses that satisfy a due task when computing perfect days
STREAK_SATISFYING_STATUSES = frozenset({CompletionStatus.APPROVED, CompletionStatus.SKIPPED})


class CompletionRecord(BaseModel):
    """Completion record for one task on one date."""

    id: str = Field(..., description="Record ID; increases with creation order")
    task_id: str = Field(..., description="Task this record belongs to")
    date: date  # Date the task was scheduled
    status: CompletionStatus = Field(default=CompletionStatus.PENDING, description="Current status")
    completed_at: str | None = Field(default=None, description="When the task was marked done (ISO format)")
    approved_at: str | None = Field(default=None, description="When the completion was approved (ISO format)")
    notes: str | None = Field(default=None, description="Free-form notes")
    created: str = Field(default="", description="Creation timestamp (ISO format)")
    updated: str = Field(default="", description="Last update timestamp (ISO format)")
