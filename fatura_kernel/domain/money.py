"""
Money -- currency amount normalization and installment splitting.

Pure functions, zero I/O.  Amounts are Decimal quantized to cents with
ROUND_HALF_UP; float inputs are converted through ``str`` so that 0.1 stays
0.10 and never becomes 0.1000000000000000055.
"""

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation

from fatura_kernel.exceptions import InvalidAmountError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_amount(value: Decimal | int | float | str) -> Decimal:
    """
    Convert ``value`` to a cents-quantized Decimal.

    Raises:
        InvalidAmountError: value is not a finite number.
    """
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidAmountError(value, "not a number") from None
    if not amount.is_finite():
        raise InvalidAmountError(value, "not a finite number")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def require_positive(value: Decimal | int | float | str) -> Decimal:
    """Quantize ``value`` and reject zero and negatives."""
    amount = to_amount(value)
    if amount <= ZERO:
        raise InvalidAmountError(value)
    return amount


def split_installments(total: Decimal, count: int) -> list[Decimal]:
    """
    Split ``total`` into ``count`` cent amounts that sum back to ``total``.

    Every installment gets ``total / count`` rounded down to the cent; the
    first installment absorbs the leftover cents.  300.00 / 3 gives
    [100.00, 100.00, 100.00]; 100.00 / 3 gives [33.34, 33.33, 33.33].

    Raises:
        InvalidAmountError: count < 1, or total too small for every
            installment to be at least one cent.
    """
    if count < 1:
        raise InvalidAmountError(total, f"installment count must be >= 1, got {count}")
    total = require_positive(total)
    base = (total / count).quantize(CENT, rounding=ROUND_DOWN)
    if base <= ZERO:
        raise InvalidAmountError(
            total, f"cannot split into {count} positive installments"
        )
    remainder = total - base * count
    return [base + remainder] + [base] * (count - 1)
