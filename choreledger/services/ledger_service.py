"""Ledger reconciliation, transfers and balance queries.

``reconcile`` maps a completion record's status onto at most one ledger
transaction linked to that record. It is idempotent: running it again after
nothing changed performs no writes, and a status change updates or removes the
existing transaction rather than adding another.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from choreledger.core import db_client
from choreledger.core.clock import DateProvider, system_clock
from choreledger.core.config import constants
from choreledger.core.errors import ErrorCategory
from choreledger.core.locks import entity_lock
from choreledger.core.logging import log_money_movement, span
from choreledger.core.money import ZERO, format_money, round_money, sum_money, to_money
from choreledger.domain.completion import CompletionRecord, CompletionStatus
from choreledger.domain.ledger import LedgerAccount, LedgerTransaction, TransactionType
from choreledger.domain.task import RecurringTask, ScheduleKind
from choreledger.models.service_models import ReconcileResult, TransactionStats, TransferResult
from choreledger.services import bonus_service, profile_service, schedule_service


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TargetEntry:
    """The ledger entry a completion record should have."""

    amount: Decimal
    type: TransactionType
    description: str


async def get_completion_record(record_id: str) -> CompletionRecord:
    """Load a completion record by ID.

    Raises:
        KeyError: If the record does not exist
    """
    record = await db_client.get_record(collection="completion_records", record_id=record_id)
    return CompletionRecord(**record)


async def get_transaction_for_record(completion_record_id: str) -> LedgerTransaction | None:
    """Get the ledger transaction linked to a completion record, if any."""
    record = await db_client.get_first_record(
        collection="ledger_transactions",
        filter_query=f'completion_record_id = "{db_client.sanitize_param(completion_record_id)}"',
    )
    return LedgerTransaction(**record) if record else None


async def count_prior_approved_in_week(record: CompletionRecord) -> int:
    """Count approved records of the same task in the record's week created before it.

    Args:
        record: Completion record being reconciled

    Returns:
        Number of earlier approved records in the Sunday-to-Saturday week
    """
    week_start, week_end = schedule_service.week_window(record.date)
    return await db_client.count_records(
        collection="completion_records",
        filter_query=(
            f'task_id = "{db_client.sanitize_param(record.task_id)}"'
            f' && status = "{CompletionStatus.APPROVED}"'
            f' && date >= "{week_start.isoformat()}"'
            f' && date <= "{week_end.isoformat()}"'
            f' && id < "{db_client.sanitize_param(record.id)}"'
        ),
    )


def weekly_earning(task: RecurringTask, prior_approved: int) -> tuple[Decimal, str]:
    """Earning for a weekly-frequency completion given how many came before it this week.

    Completions within the weekly target pay the full value. Beyond it,
    non-repeatable tasks pay nothing and repeatable tasks halve with each extra
    completion.

    Args:
        task: Weekly-frequency task
        prior_approved: Approved completions earlier in the same week

    Returns:
        Tuple of (amount rounded to cents, ledger description)
    """
    target = task.weekly_target_count
    if prior_approved < target:
        return task.earn_value, f"Completed: {task.name} ({prior_approved + 1}/{target})"

    extra_index = prior_approved - target
    description = f"Bonus: {task.name} (+{extra_index + 1} extra)"
    if not task.is_repeatable:
        return ZERO, description

    amount = round_money(task.earn_value * constants.BONUS_COMPLETION_DECAY ** (extra_index + 1))
    return amount, description


async def compute_target(
    record: CompletionRecord,
    task: RecurringTask,
    user_id: str,
    *,
    clock: DateProvider = system_clock,
) -> TargetEntry | None:
    """Work out the ledger entry a record should have, after bonus modifiers.

    Args:
        record: Completion record being reconciled
        task: The record's task
        user_id: Assignee whose bonuses apply
        clock: Determines which bonuses are active

    Returns:
        TargetEntry for approved (earning) and missed (deduction) records, or
        None when the record should have no entry
    """
    if record.status == CompletionStatus.APPROVED:
        if task.earn_value <= ZERO:
            return None

        if task.schedule_kind == ScheduleKind.WEEKLY_FREQUENCY:
            prior = await count_prior_approved_in_week(record)
            amount, description = weekly_earning(task, prior)
        else:
            amount, description = task.earn_value, f"Completed: {task.name}"

        if amount <= ZERO:
            return None

        application = await bonus_service.apply_point_multiplier_for_user(user_id, amount, clock=clock)
        amount = round_money(application.modified_value)
        if amount <= ZERO:
            return None
        return TargetEntry(amount=amount, type=TransactionType.EARNING, description=description)

    if record.status == CompletionStatus.MISSED:
        if task.penalty_value <= ZERO:
            return None

        application = await bonus_service.apply_penalty_reduction_for_user(user_id, task.penalty_value, clock=clock)
        penalty = round_money(application.modified_value)
        if penalty <= ZERO:
            return None
        return TargetEntry(amount=-penalty, type=TransactionType.DEDUCTION, description=f"Missed: {task.name}")

    return None


def _not_found(message: str) -> ReconcileResult:
    return ReconcileResult(success=False, error_category=ErrorCategory.NOT_FOUND, message=message)


async def reconcile(completion_record_id: str, *, clock: DateProvider = system_clock) -> ReconcileResult:
    """Bring the ledger in line with a completion record's current status.

    A task with no assignee is a successful no-op.

    Args:
        completion_record_id: Record to reconcile
        clock: Determines which bonuses are active

    Returns:
        ReconcileResult saying whether the linked transaction was created,
        updated or removed; a NOT_FOUND failure when the record, its task, the
        assignee's profile or an active account cannot be found
    """
    with span("ledger_service.reconcile"):
        async with entity_lock("completion_record", completion_record_id), db_client.transaction():
            try:
                record = await get_completion_record(completion_record_id)
            except KeyError:
                return _not_found(f"Completion record {completion_record_id} not found")

            try:
                task = await schedule_service.get_task(record.task_id)
            except KeyError:
                return _not_found(f"Task {record.task_id} not found")

            user_id = task.assigned_user_id
            if not user_id:
                return ReconcileResult(success=True, message="Task has no assigned user")

            if await profile_service.get_profile(user_id) is None:
                return _not_found(f"No profile for user {user_id}")

            account = await profile_service.get_default_account(user_id)
            if account is None:
                return _not_found(f"No active ledger account for user {user_id}")

            target = await compute_target(record, task, user_id, clock=clock)
            existing = await get_transaction_for_record(record.id)
            result = await _apply_target(record, user_id, account, target, existing)

        logger.info(
            "Reconciled completion record",
            extra={
                "completion_record_id": completion_record_id,
                "status": record.status,
                "created": result.created,
                "updated": result.updated,
                "removed": result.removed,
            },
        )
        return result


async def _apply_target(
    record: CompletionRecord,
    user_id: str,
    account: LedgerAccount,
    target: TargetEntry | None,
    existing: LedgerTransaction | None,
) -> ReconcileResult:
    if target is None:
        if existing is None:
            return ReconcileResult(success=True, message="No transaction required")
        await db_client.delete_record(collection="ledger_transactions", record_id=existing.id)
        return ReconcileResult(success=True, message="Transaction removed", removed=True)

    if existing is None:
        created = await db_client.create_record(
            collection="ledger_transactions",
            data={
                "account_id": account.id,
                "user_id": user_id,
                "completion_record_id": record.id,
                "amount": target.amount,
                "type": target.type,
                "description": target.description,
                "transaction_date": record.date,
            },
        )
        return ReconcileResult(
            success=True,
            message="Transaction created",
            transaction=LedgerTransaction(**created),
            created=True,
        )

    unchanged = (
        existing.amount == target.amount
        and existing.type == target.type
        and existing.description == target.description
    )
    if unchanged:
        return ReconcileResult(success=True, message="Transaction unchanged", transaction=existing)

    updated = await db_client.update_record(
        collection="ledger_transactions",
        record_id=existing.id,
        data={
            "account_id": account.id,
            "amount": target.amount,
            "type": target.type,
            "description": target.description,
        },
    )
    return ReconcileResult(
        success=True,
        message="Transaction updated",
        transaction=LedgerTransaction(**updated),
        updated=True,
    )


async def get_account_transactions(
    account_id: str,
    *,
    from_date: date | None = None,
    to_date: date | None = None,
) -> list[LedgerTransaction]:
    """List an account's transactions, newest first.

    Args:
        account_id: Account to list
        from_date: Earliest transaction date, inclusive
        to_date: Latest transaction date, inclusive

    Returns:
        Transactions ordered by date then id, descending
    """
    filter_query = f'account_id = "{db_client.sanitize_param(account_id)}"'
    if from_date is not None:
        filter_query += f' && transaction_date >= "{from_date.isoformat()}"'
    if to_date is not None:
        filter_query += f' && transaction_date <= "{to_date.isoformat()}"'

    records = await db_client.list_all_records(
        collection="ledger_transactions",
        filter_query=filter_query,
        sort="transaction_date DESC, id DESC",
    )
    return [LedgerTransaction(**r) for r in records]


async def get_account_balance(account_id: str) -> Decimal:
    """Signed sum of an account's transactions."""
    records = await db_client.list_all_records(
        collection="ledger_transactions",
        filter_query=f'account_id = "{db_client.sanitize_param(account_id)}"',
    )
    return sum_money([to_money(r["amount"]) for r in records])


async def get_user_balance(user_id: str) -> Decimal:
    """Combined balance of a user's active accounts."""
    accounts = await profile_service.get_accounts(user_id)
    balances = [await get_account_balance(account.id) for account in accounts]
    return sum_money(balances)


async def get_account_transaction_stats(
    account_id: str,
    *,
    from_date: date | None = None,
    to_date: date | None = None,
) -> TransactionStats:
    """Totals per transaction type for an account.

    Args:
        account_id: Account to summarize
        from_date: Earliest transaction date, inclusive
        to_date: Latest transaction date, inclusive

    Returns:
        TransactionStats with outflows reported as positive magnitudes
    """
    transactions = await get_account_transactions(account_id, from_date=from_date, to_date=to_date)

    def total(kind: TransactionType, *, magnitude: bool = False) -> Decimal:
        amounts = [t.amount for t in transactions if t.type == kind]
        return sum_money([abs(a) for a in amounts] if magnitude else amounts)

    transfers = [t.amount for t in transactions if t.type == TransactionType.TRANSFER]
    return TransactionStats(
        account_id=account_id,
        total_earned=sum_money([t.amount for t in transactions if t.type == TransactionType.EARNING and t.amount > 0]),
        total_deducted=total(TransactionType.DEDUCTION, magnitude=True),
        total_bonus=total(TransactionType.BONUS),
        total_penalty=total(TransactionType.PENALTY, magnitude=True),
        total_payout=total(TransactionType.PAYOUT, magnitude=True),
        total_adjustment=total(TransactionType.ADJUSTMENT),
        transfers_in=sum_money([a for a in transfers if a > 0]),
        transfers_out=sum_money([-a for a in transfers if a < 0]),
        net=sum_money([t.amount for t in transactions]),
        transaction_count=len(transactions),
    )


def _transfer_failure(category: ErrorCategory, message: str) -> TransferResult:
    return TransferResult(success=False, error_category=category, message=message)


async def transfer(
    from_account_id: str,
    to_account_id: str,
    amount: Decimal,
    reason: str = "",
    *,
    clock: DateProvider = system_clock,
) -> TransferResult:
    """Move money between two accounts as a pair of linked transfer transactions.

    Both legs are written in one store transaction, so either both exist or neither does.

    Args:
        from_account_id: Account debited
        to_account_id: Account credited
        amount: Positive amount to move
        reason: Optional text appended to both descriptions
        clock: Source of the transaction date

    Returns:
        TransferResult with both legs and their shared transfer_group_id, or a
        failure for invalid amounts, missing accounts or an insufficient balance
    """
    with span("ledger_service.transfer"):
        try:
            amount = to_money(amount)
        except ValueError as e:
            return _transfer_failure(ErrorCategory.VALIDATION_ERROR, str(e))

        if amount <= ZERO:
            return _transfer_failure(ErrorCategory.VALIDATION_ERROR, "Transfer amount must be positive")
        if str(from_account_id) == str(to_account_id):
            return _transfer_failure(ErrorCategory.VALIDATION_ERROR, "Cannot transfer to the same account")

        async with entity_lock("ledger_account", from_account_id, to_account_id), db_client.transaction():
            try:
                source = await profile_service.get_account(from_account_id)
                destination = await profile_service.get_account(to_account_id)
                source_owner = await profile_service.get_account_owner(source)
                destination_owner = await profile_service.get_account_owner(destination)
            except KeyError:
                return _transfer_failure(ErrorCategory.NOT_FOUND, "One or both accounts not found")

            balance = await get_account_balance(source.id)
            if balance < amount:
                return _transfer_failure(
                    ErrorCategory.INSUFFICIENT_BALANCE,
                    f"Insufficient balance. Available: {format_money(balance)}",
                )

            transfer_group_id = str(uuid.uuid4())
            today = clock.today()
            suffix = f": {reason}" if reason else ""
            debit = await db_client.create_record(
                collection="ledger_transactions",
                data={
                    "account_id": source.id,
                    "user_id": source_owner.user_id,
                    "amount": -amount,
                    "type": TransactionType.TRANSFER,
                    "description": f"Transfer to {destination_owner.display_name}'s {destination.name}{suffix}",
                    "transaction_date": today,
                    "transfer_group_id": transfer_group_id,
                },
            )
            credit = await db_client.create_record(
                collection="ledger_transactions",
                data={
                    "account_id": destination.id,
                    "user_id": destination_owner.user_id,
                    "amount": amount,
                    "type": TransactionType.TRANSFER,
                    "description": f"Transfer from {source_owner.display_name}'s {source.name}{suffix}",
                    "transaction_date": today,
                    "transfer_group_id": transfer_group_id,
                },
            )

        log_money_movement(
            logger,
            "Transferred between accounts",
            account_id=from_account_id,
            amount=amount,
            to_account_id=to_account_id,
            transfer_group_id=transfer_group_id,
        )
        return TransferResult(
            success=True,
            message=f"Transferred {format_money(amount)}",
            transfer_group_id=transfer_group_id,
            debit=LedgerTransaction(**debit),
            credit=LedgerTransaction(**credit),
        )
