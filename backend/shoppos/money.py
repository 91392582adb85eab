from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP


def divide_half_up(numerator: int, denominator: int) -> int:
    """Integer division of minor units, rounded half-up (never banker's)."""
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    quotient = Decimal(numerator) / Decimal(denominator)
    return int(quotient.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def format_cents(cents: int | None) -> str:
    """1234567 -> '12,345.67'. Used in human-readable messages only."""
    if cents is None:
        return "-"
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(int(cents)), 100)
    return f"{sign}{whole:,}.{frac:02d}"
