# Overview: Fixed-point helpers for monetary amounts (two fraction digits, truncated).

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_DOWN

ZERO = Decimal("0.00")
CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    """
    Coerce a number (int, str, float, Decimal) to a 2-place Decimal.

    Extra precision is truncated toward zero, matching what a
    NUMERIC(10, 2) column keeps; no banker's rounding.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"Not a monetary amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return amount.quantize(CENTS, rounding=ROUND_DOWN)


def money_json(value) -> str | None:
    """Render an amount for JSON responses ("12.50")."""
    if value is None:
        return None
    return f"{to_money(value):.2f}"
