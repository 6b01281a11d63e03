# Overview: Pure money and quantity arithmetic shared by the ledger services.

"""
Ledger primitives

No database access and no side effects. Everything here is safe to call
outside an app context.

Conventions:
- Persisted money is integer minor units (cents).
- Display/processor-facing amounts are Decimal currency units.
- Rounding is half-up (0.005 -> 0.01), to the cent.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, NamedTuple

from ..errors import ExceedsBalance, InsufficientStock, InvalidAmount, ValidationError


CENT = Decimal("0.01")
HUNDRED = Decimal(100)
BPS_DENOMINATOR = Decimal(10_000)


def to_money(value, default: Decimal = Decimal("0")) -> Decimal:
    """
    Coerce a numeric-like value (int, float, str, Decimal, None) to a finite Decimal.

    Returns default for None, booleans, NaN/infinity and anything unparsable.
    Never raises.
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        if isinstance(value, Decimal):
            num = value
        elif isinstance(value, float):
            num = Decimal(repr(value))
        else:
            num = Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        return default
    if not num.is_finite():
        return default
    return num


def round2(value) -> Decimal:
    return to_money(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _require_money(value) -> Decimal:
    num = to_money(value, default=None)
    if num is None:
        raise ValidationError(f"Not a valid amount: {value!r}")
    return num


def cents_from_units(amount) -> int:
    """Currency units -> integer minor units, half-up (12.345 -> 1235)."""
    num = _require_money(amount)
    return int((num * HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def units_from_cents(cents: int) -> Decimal:
    """Integer minor units -> currency units (1235 -> Decimal("12.35"))."""
    return (Decimal(int(cents)) / HUNDRED).quantize(CENT)


def remaining_balance(total, paid) -> Decimal:
    """max(0, round2(total - paid)) in currency units. Never negative."""
    remaining = round2(to_money(total) - to_money(paid))
    return remaining if remaining > 0 else Decimal("0.00")


def remaining_balance_cents(total_cents: int, paid_cents: int) -> int:
    """Integer form of remaining_balance for persisted cent amounts."""
    return max(0, int(total_cents or 0) - int(paid_cents or 0))


def validate_payment_amount(amount, remaining) -> None:
    """
    Check a payment against the outstanding balance.

    Both arguments must use the same unit (cents with cents, units with units).

    Raises:
        InvalidAmount: amount <= 0
        ExceedsBalance: amount > remaining
    """
    if amount is None or amount <= 0:
        raise InvalidAmount("Payment amount must be greater than zero")
    if amount > remaining:
        raise ExceedsBalance("Payment amount cannot exceed the remaining balance")


def apply_stock_delta(quantity_before: int, quantity_delta: int) -> int:
    """Return quantity_before + quantity_delta, rejecting a negative result."""
    quantity_after = quantity_before + quantity_delta
    if quantity_after < 0:
        raise InsufficientStock(
            f"Insufficient stock: current {quantity_before}, requested {abs(quantity_delta)}"
        )
    return quantity_after


# =============================================================================
# DOCUMENT LINE ARITHMETIC
# =============================================================================

class LineAmounts(NamedTuple):
    subtotal_cents: int
    tax_cents: int
    total_cents: int


def _bps_of(cents: int, bps: int) -> int:
    portion = Decimal(cents) * Decimal(bps) / BPS_DENOMINATOR
    return int(portion.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_line_amounts(
    quantity: int,
    unit_price_cents: int,
    tax_rate_bps: int = 0,
    discount_bps: int = 0,
) -> LineAmounts:
    """
    Pre-tax subtotal, tax and total of one line.

    The discount applies to the gross amount before tax; tax is computed on
    the discounted subtotal. Each step rounds half-up to the cent.
    """
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")
    if unit_price_cents < 0:
        raise ValidationError("unit_price_cents must be >= 0")
    if not 0 <= discount_bps <= 10_000:
        raise ValidationError("discount_bps must be between 0 and 10000")
    if tax_rate_bps < 0:
        raise ValidationError("tax_rate_bps must be >= 0")

    gross = quantity * unit_price_cents
    subtotal = gross - _bps_of(gross, discount_bps)
    tax = _bps_of(subtotal, tax_rate_bps)
    return LineAmounts(subtotal, tax, subtotal + tax)


def compute_document_totals(lines: Iterable[LineAmounts]) -> LineAmounts:
    subtotal = tax = 0
    for line in lines:
        subtotal += line.subtotal_cents
        tax += line.tax_cents
    return LineAmounts(subtotal, tax, subtotal + tax)


def format_currency(cents: int, currency: str = "EUR") -> str:
    return f"{units_from_cents(cents):,.2f} {currency}"
