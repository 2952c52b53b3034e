"""Completion status updates, each followed by ledger reconciliation."""

import logging
from datetime import date

from choreledger.core import db_client
from choreledger.core.clock import DateProvider, system_clock
from choreledger.core.errors import ErrorCategory
from choreledger.core.logging import span
from choreledger.domain.completion import CompletionRecord, CompletionStatus
from choreledger.models.service_models import ReconcileResult
from choreledger.services import ledger_service, schedule_service


logger = logging.getLogger(__name__)


async def get_record(task_id: str, day: date) -> CompletionRecord | None:
    """Get the completion record for a task on a date, if any."""
    record = await db_client.get_first_record(
        collection="completion_records",
        filter_query=f'task_id = "{db_client.sanitize_param(task_id)}" && date = "{day.isoformat()}"',
    )
    return CompletionRecord(**record) if record else None


async def set_status(
    task_id: str,
    day: date,
    status: CompletionStatus,
    notes: str | None = None,
    *,
    clock: DateProvider = system_clock,
) -> ReconcileResult:
    """Record a task's status for a date and reconcile the ledger with it.

    Creates the (task, date) record on first use. Marking a record completed or
    approved stamps the matching timestamp.

    Args:
        task_id: Task the status belongs to
        day: Date the status applies to
        status: New completion status
        notes: Optional notes stored on the record
        clock: Source of the completed and approved timestamps

    Returns:
        ReconcileResult from reconciling the record, or NOT_FOUND when the task does not exist
    """
    with span("completion_service.set_status"):
        try:
            await schedule_service.get_task(task_id)
        except KeyError:
            return ReconcileResult(
                success=False,
                error_category=ErrorCategory.NOT_FOUND,
                message=f"Task {task_id} not found",
            )

        now = clock.utc_now()
        data: dict[str, object] = {"status": status}
        if status == CompletionStatus.COMPLETED:
            data["completed_at"] = now
        elif status == CompletionStatus.APPROVED:
            data["approved_at"] = now
        if notes is not None:
            data["notes"] = notes

        async with db_client.transaction():
            existing = await get_record(task_id, day)
            if existing is None:
                saved = await db_client.create_record(
                    collection="completion_records",
                    data={"task_id": task_id, "date": day, **data},
                )
            else:
                saved = await db_client.update_record(
                    collection="completion_records",
                    record_id=existing.id,
                    data=data,
                )

        record = CompletionRecord(**saved)
        logger.info(
            "Completion status set",
            extra={"task_id": task_id, "date": day.isoformat(), "status": status, "completion_record_id": record.id},
        )
        return await ledger_service.reconcile(record.id, clock=clock)
