# Overview: Cent-based money helpers used by pricing, services and serializers.

"""
Amounts are stored as integer cents. The API speaks decimal amounts
(e.g. 236.00); conversion happens here with half-up rounding so that the
same input always lands on the same cent.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")

# Maximum amount: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999

# Payment totals may differ from the sale total by at most one cent
PAYMENT_TOLERANCE_CENTS = 1


def to_decimal(value) -> Decimal:
    if isinstance(value, bool):
        raise ValueError("amount must be a number")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # repr() keeps 236.1 as "236.1" instead of its binary expansion
        return Decimal(repr(value))
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError("amount must be a number")


def round_half_up(value: Decimal, exp: Decimal = Decimal("1")) -> Decimal:
    return value.quantize(exp, rounding=ROUND_HALF_UP)


def to_cents(value) -> int:
    """Decimal amount (str/int/float/Decimal) -> integer cents, half-up."""
    amount = to_decimal(value)
    if not amount.is_finite():
        raise ValueError("amount must be a finite number")
    return int(round_half_up(amount * 100))


def cents_to_amount(cents: int | None) -> float | None:
    if cents is None:
        return None
    return float((Decimal(cents) / 100).quantize(CENT))


def percent_of_cents(cents: int, percent) -> int:
    """round_half_up(cents * percent / 100) in whole cents."""
    return int(round_half_up(Decimal(cents) * to_decimal(percent) / 100))


def prorate_cents(total_cents: int, part: int, whole: int) -> int:
    """Proportional share of total_cents for part/whole units, half-up."""
    if whole <= 0:
        raise ValueError("whole must be positive")
    return int(round_half_up(Decimal(total_cents) * part / whole))
