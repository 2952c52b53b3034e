"""Unit tests for completion status updates."""

from decimal import Decimal

import pytest

from choreledger.core.errors import ErrorCategory
from choreledger.domain.completion import CompletionStatus
from choreledger.services import completion_service, ledger_service
from tests.unit.conftest import NOW, TODAY


@pytest.mark.unit
class TestSetStatus:
    """Tests for set_status."""

    async def test_creates_record_and_reconciles(self, kid, make_task, clock):
        """Test the first status for a date creates the record and its earning."""
        task = await make_task(earn_value=Decimal("1.50"))

        result = await completion_service.set_status(task.id, TODAY, CompletionStatus.APPROVED, clock=clock)

        assert result.success is True
        assert result.created is True
        record = await completion_service.get_record(task.id, TODAY)
        assert record is not None
        assert record.status == CompletionStatus.APPROVED
        assert record.approved_at == NOW.isoformat()
        assert result.transaction.completion_record_id == record.id
        assert result.transaction.amount == Decimal("1.50")

    async def test_updates_existing_record(self, kid, make_task, clock):
        """Test a later status rewrites the same record and its entry."""
        task = await make_task(earn_value=Decimal("1.00"), penalty_value=Decimal("0.25"))
        await completion_service.set_status(task.id, TODAY, CompletionStatus.APPROVED, clock=clock)

        result = await completion_service.set_status(task.id, TODAY, CompletionStatus.MISSED, "forgot", clock=clock)

        assert result.updated is True
        record = await completion_service.get_record(task.id, TODAY)
        assert record.status == CompletionStatus.MISSED
        assert record.notes == "forgot"
        entry = await ledger_service.get_transaction_for_record(record.id)
        assert entry.amount == Decimal("-0.25")

    async def test_completed_stamps_completed_at(self, kid, make_task, clock):
        """Test marking completed records when and makes no entry."""
        task = await make_task()

        result = await completion_service.set_status(task.id, TODAY, CompletionStatus.COMPLETED, clock=clock)

        assert result.success is True
        assert result.transaction is None
        record = await completion_service.get_record(task.id, TODAY)
        assert record.completed_at == NOW.isoformat()
        assert record.approved_at is None

    async def test_unknown_task(self, db, clock):
        """Test setting a status on a missing task reports not found."""
        result = await completion_service.set_status("999", TODAY, CompletionStatus.APPROVED, clock=clock)

        assert result.success is False
        assert result.error_category == ErrorCategory.NOT_FOUND
        assert await completion_service.get_record("999", TODAY) is None
