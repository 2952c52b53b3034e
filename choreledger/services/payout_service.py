"""Cash-outs and manual ledger entries (bonuses, penalties, adjustments)."""

import logging
from decimal import Decimal

from choreledger.core import db_client
from choreledger.core.clock import DateProvider, system_clock
from choreledger.core.config import settings
from choreledger.core.errors import ErrorCategory
from choreledger.core.locks import entity_lock
from choreledger.core.logging import log_money_movement, span
from choreledger.core.money import ZERO, format_money, to_money
from choreledger.domain.ledger import ChildProfile, LedgerAccount, LedgerTransaction, TransactionType
from choreledger.models.service_models import AccountBalanceSummary, TransactionResult
from choreledger.services import bonus_service, ledger_service, profile_service


logger = logging.getLogger(__name__)


def _failure(category: ErrorCategory, message: str) -> TransactionResult:
    return TransactionResult(success=False, error_category=category, message=message)


async def _load_account(account_id: str) -> tuple[LedgerAccount, ChildProfile] | None:
    try:
        account = await profile_service.get_account(account_id)
        owner = await profile_service.get_account_owner(account)
    except KeyError:
        return None
    return account, owner


async def get_account_balance_summary(
    account_id: str,
    *,
    clock: DateProvider = system_clock,
) -> AccountBalanceSummary:
    """Balance of an account and whether it may be cashed out.

    Args:
        account_id: Account to summarize
        clock: Determines which early cash-out bonuses are active

    Returns:
        AccountBalanceSummary with the bonus-adjusted cash-out threshold

    Raises:
        KeyError: If the account does not exist
    """
    account = await profile_service.get_account(account_id)
    owner = await profile_service.get_account_owner(account)
    balance = await ledger_service.get_account_balance(account.id)
    threshold = await bonus_service.get_effective_cash_out_threshold(
        owner.user_id,
        settings.cash_out_threshold,
        clock=clock,
    )
    return AccountBalanceSummary(
        account_id=account.id,
        account_name=account.name,
        balance=balance,
        cash_out_threshold=threshold,
        can_cash_out=balance >= threshold,
    )


async def _post_entry(
    account: LedgerAccount,
    owner: ChildProfile,
    amount: Decimal,
    transaction_type: TransactionType,
    description: str,
    *,
    clock: DateProvider,
) -> TransactionResult:
    record = await db_client.create_record(
        collection="ledger_transactions",
        data={
            "account_id": account.id,
            "user_id": owner.user_id,
            "amount": amount,
            "type": transaction_type,
            "description": description,
            "transaction_date": clock.today(),
        },
    )
    log_money_movement(logger, "Posted ledger entry", account_id=account.id, amount=amount, type=transaction_type)
    return TransactionResult(success=True, message=description, transaction=LedgerTransaction(**record))


async def cash_out(
    account_id: str,
    amount: Decimal,
    notes: str | None = None,
    *,
    clock: DateProvider = system_clock,
) -> TransactionResult:
    """Pay money out of an account.

    The amount must be positive and covered by the balance, and the balance must
    reach the cash-out threshold (lowered by any early cash-out bonus).

    Args:
        account_id: Account paid out from
        amount: Positive amount to pay out
        notes: Optional text appended to the description
        clock: Source of the transaction date

    Returns:
        TransactionResult with the payout entry, or a failure naming why the
        cash-out was refused
    """
    with span("payout_service.cash_out"):
        try:
            amount = to_money(amount)
        except ValueError as e:
            return _failure(ErrorCategory.VALIDATION_ERROR, str(e))
        if amount <= ZERO:
            return _failure(ErrorCategory.VALIDATION_ERROR, "Cash out amount must be positive")

        async with entity_lock("ledger_account", account_id), db_client.transaction():
            loaded = await _load_account(account_id)
            if loaded is None:
                return _failure(ErrorCategory.NOT_FOUND, "Account not found")
            account, owner = loaded

            summary = await get_account_balance_summary(account.id, clock=clock)
            if amount > summary.balance:
                return _failure(
                    ErrorCategory.INSUFFICIENT_BALANCE,
                    f"Insufficient balance. Current balance is {format_money(summary.balance)}",
                )
            if not summary.can_cash_out:
                return _failure(
                    ErrorCategory.VALIDATION_ERROR,
                    f"Balance must be at least {format_money(summary.cash_out_threshold)} to cash out",
                )

            description = f"Cash out: {format_money(amount)}"
            if notes and notes.strip():
                description += f" - {notes.strip()}"
            return await _post_entry(account, owner, -amount, TransactionType.PAYOUT, description, clock=clock)


async def _manual_entry(
    account_id: str,
    amount: Decimal,
    description: str,
    *,
    transaction_type: TransactionType,
    clock: DateProvider,
) -> TransactionResult:
    try:
        amount = to_money(amount)
    except ValueError as e:
        return _failure(ErrorCategory.VALIDATION_ERROR, str(e))

    label = transaction_type.value.capitalize()
    if transaction_type == TransactionType.ADJUSTMENT:
        if amount == ZERO:
            return _failure(ErrorCategory.VALIDATION_ERROR, "Adjustment amount cannot be zero")
    elif amount <= ZERO:
        return _failure(ErrorCategory.VALIDATION_ERROR, f"{label} amount must be positive")

    if not description or not description.strip():
        return _failure(ErrorCategory.VALIDATION_ERROR, f"{label} description is required")

    async with entity_lock("ledger_account", account_id), db_client.transaction():
        loaded = await _load_account(account_id)
        if loaded is None:
            return _failure(ErrorCategory.NOT_FOUND, "Account not found")
        account, owner = loaded

        match transaction_type:
            case TransactionType.PENALTY:
                signed, text = -amount, f"Penalty: {description.strip()}"
            case TransactionType.ADJUSTMENT:
                direction = "Credit" if amount > ZERO else "Debit"
                signed, text = amount, f"Adjustment ({direction}): {description.strip()}"
            case _:
                signed, text = amount, f"Bonus: {description.strip()}"

        return await _post_entry(account, owner, signed, transaction_type, text, clock=clock)


async def add_bonus(
    account_id: str,
    amount: Decimal,
    description: str,
    *,
    clock: DateProvider = system_clock,
) -> TransactionResult:
    """Credit a discretionary bonus to an account."""
    with span("payout_service.add_bonus"):
        return await _manual_entry(
            account_id, amount, description, transaction_type=TransactionType.BONUS, clock=clock
        )


async def add_penalty(
    account_id: str,
    amount: Decimal,
    description: str,
    *,
    clock: DateProvider = system_clock,
) -> TransactionResult:
    """Debit a discretionary penalty from an account.

    Args:
        account_id: Account debited
        amount: Positive magnitude of the penalty
        description: Reason shown after "Penalty: "
        clock: Source of the transaction date

    Returns:
        TransactionResult with the negative penalty entry
    """
    with span("payout_service.add_penalty"):
        return await _manual_entry(
            account_id, amount, description, transaction_type=TransactionType.PENALTY, clock=clock
        )


async def add_adjustment(
    account_id: str,
    amount: Decimal,
    description: str,
    *,
    clock: DateProvider = system_clock,
) -> TransactionResult:
    """Post a signed correction to an account."""
    with span("payout_service.add_adjustment"):
        return await _manual_entry(
            account_id, amount, description, transaction_type=TransactionType.ADJUSTMENT, clock=clock
        )
