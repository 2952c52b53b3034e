"""Fixed-point currency helpers.

Amounts are ``Decimal`` values with two decimal places. Rounding is half-even,
applied after every multiplicative step.
"""

from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation

from choreledger.core.config import constants


ZERO = Decimal("0.00")


def to_money(value: Decimal | int | float | str | None) -> Decimal:
    """Convert a stored or user-supplied value to a two-place Decimal.

    Floats go through ``str`` so that ``0.1`` becomes ``Decimal("0.10")``
    rather than its binary expansion.

    Raises:
        ValueError: If the value is not a finite number
    """
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return round_money(amount)


def round_money(amount: Decimal) -> Decimal:
    """Quantize to the currency's minor unit."""
    return amount.quantize(constants.MONEY_QUANTUM, rounding=ROUND_HALF_EVEN)


def sum_money(amounts: list[Decimal]) -> Decimal:
    """Signed sum of amounts, quantized."""
    return round_money(sum(amounts, ZERO))


def format_money(amount: Decimal) -> str:
    """Render an amount for descriptions and error messages (e.g. ``$12.50``)."""
    return f"${round_money(amount):.2f}"
