"""Unit tests for cash-outs and manual ledger entries."""

from decimal import Decimal

import pytest

from choreledger.core.config import settings
from choreledger.core.errors import ErrorCategory
from choreledger.domain.achievement import BonusType
from choreledger.domain.ledger import TransactionType
from choreledger.services import bonus_service, ledger_service, payout_service
from tests.unit.conftest import KID_USER_ID, TODAY


@pytest.fixture
async def funded_account(kid_account, clock):
    """Default account holding $10."""
    await payout_service.add_bonus(kid_account.id, Decimal("10.00"), "Allowance", clock=clock)
    return kid_account


@pytest.mark.unit
class TestCashOut:
    """Tests for cash_out."""

    async def test_cash_out_debits_account(self, funded_account, clock):
        """Test a cash-out posts a negative payout with notes appended."""
        result = await payout_service.cash_out(funded_account.id, Decimal("3.00"), "movie", clock=clock)

        assert result.success is True
        assert result.transaction.amount == Decimal("-3.00")
        assert result.transaction.type == TransactionType.PAYOUT
        assert result.transaction.description == "Cash out: $3.00 - movie"
        assert result.transaction.transaction_date == TODAY
        assert await ledger_service.get_account_balance(funded_account.id) == Decimal("7.00")

    async def test_cash_out_whole_balance(self, funded_account, clock):
        """Test the full balance may be cashed out."""
        result = await payout_service.cash_out(funded_account.id, Decimal("10.00"), clock=clock)

        assert result.success is True
        assert result.transaction.description == "Cash out: $10.00"

    async def test_insufficient_balance(self, funded_account, clock):
        """Test cashing out more than the balance fails."""
        result = await payout_service.cash_out(funded_account.id, Decimal("10.01"), clock=clock)

        assert result.success is False
        assert result.error_category == ErrorCategory.INSUFFICIENT_BALANCE
        assert await ledger_service.get_account_balance(funded_account.id) == Decimal("10.00")

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), "ten"])
    async def test_invalid_amount(self, funded_account, clock, amount):
        """Test non-positive or malformed amounts are rejected."""
        result = await payout_service.cash_out(funded_account.id, amount, clock=clock)

        assert result.error_category == ErrorCategory.VALIDATION_ERROR

    async def test_below_threshold(self, funded_account, clock, monkeypatch):
        """Test a balance under the threshold cannot be cashed out."""
        monkeypatch.setattr(settings, "cash_out_threshold", Decimal("20.00"))

        result = await payout_service.cash_out(funded_account.id, Decimal("1.00"), clock=clock)

        assert result.success is False
        assert result.error_category == ErrorCategory.VALIDATION_ERROR
        assert result.message == "Balance must be at least $20.00 to cash out"

    async def test_early_cash_out_bonus_lowers_threshold(self, funded_account, make_achievement, clock, monkeypatch):
        """Test an early cash-out bonus lets a smaller balance cash out."""
        monkeypatch.setattr(settings, "cash_out_threshold", Decimal("20.00"))
        achievement = await make_achievement(BonusType.EARLY_CASH_OUT, {"threshold_reduction": "12.00"})
        await bonus_service.grant(KID_USER_ID, achievement, clock=clock)

        summary = await payout_service.get_account_balance_summary(funded_account.id, clock=clock)
        result = await payout_service.cash_out(funded_account.id, Decimal("1.00"), clock=clock)

        assert summary.cash_out_threshold == Decimal("8.00")
        assert summary.can_cash_out is True
        assert result.success is True

    async def test_unknown_account(self, db, clock):
        """Test cashing out of a missing account reports not found."""
        result = await payout_service.cash_out("999", Decimal("1.00"), clock=clock)

        assert result.error_category == ErrorCategory.NOT_FOUND


@pytest.mark.unit
class TestManualEntries:
    """Tests for discretionary bonuses, penalties and adjustments."""

    async def test_bonus(self, kid_account, clock):
        """Test a bonus credits the account."""
        result = await payout_service.add_bonus(kid_account.id, Decimal("2.00"), "  Helped grandma  ", clock=clock)

        assert result.transaction.amount == Decimal("2.00")
        assert result.transaction.type == TransactionType.BONUS
        assert result.transaction.description == "Bonus: Helped grandma"

    async def test_penalty_is_negative(self, kid_account, clock):
        """Test a penalty takes a positive magnitude and posts it negative."""
        result = await payout_service.add_penalty(kid_account.id, Decimal("1.25"), "Broke a vase", clock=clock)

        assert result.transaction.amount == Decimal("-1.25")
        assert result.transaction.type == TransactionType.PENALTY
        assert result.transaction.description == "Penalty: Broke a vase"

    @pytest.mark.parametrize(
        ("amount", "description"),
        [(Decimal("3.00"), "Adjustment (Credit): fix"), (Decimal("-3.00"), "Adjustment (Debit): fix")],
    )
    async def test_adjustment_direction(self, kid_account, clock, amount, description):
        """Test adjustments keep their sign and name their direction."""
        result = await payout_service.add_adjustment(kid_account.id, amount, "fix", clock=clock)

        assert result.transaction.amount == amount
        assert result.transaction.description == description

    async def test_zero_adjustment_rejected(self, kid_account, clock):
        """Test a zero adjustment is rejected."""
        result = await payout_service.add_adjustment(kid_account.id, Decimal("0"), "nothing", clock=clock)

        assert result.error_category == ErrorCategory.VALIDATION_ERROR

    async def test_description_required(self, kid_account, clock):
        """Test a blank description is rejected."""
        result = await payout_service.add_bonus(kid_account.id, Decimal("1.00"), "   ", clock=clock)

        assert result.error_category == ErrorCategory.VALIDATION_ERROR
        assert result.message == "Bonus description is required"

    async def test_negative_penalty_rejected(self, kid_account, clock):
        """Test a penalty must be given as a positive magnitude."""
        result = await payout_service.add_penalty(kid_account.id, Decimal("-1.00"), "oops", clock=clock)

        assert result.error_category == ErrorCategory.VALIDATION_ERROR

    async def test_unknown_account(self, db, clock):
        """Test posting to a missing account reports not found."""
        result = await payout_service.add_bonus("999", Decimal("1.00"), "gift", clock=clock)

        assert result.error_category == ErrorCategory.NOT_FOUND


@pytest.mark.unit
class TestBalanceSummary:
    """Tests for get_account_balance_summary."""

    async def test_summary(self, funded_account, clock):
        """Test the summary reports balance and eligibility."""
        summary = await payout_service.get_account_balance_summary(funded_account.id, clock=clock)

        assert summary.account_name == "Spending"
        assert summary.balance == Decimal("10.00")
        assert summary.can_cash_out is True

    async def test_unknown_account_raises(self, db, clock):
        """Test an unknown account raises KeyError."""
        with pytest.raises(KeyError):
            await payout_service.get_account_balance_summary("999", clock=clock)
