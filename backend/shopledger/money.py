from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

CENT = Decimal("0.01")


def to_money(value) -> Optional[Decimal]:
    """Quantize a numeric value to two places (half-up). None stays None."""
    if value is None:
        return None
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def money_str(value) -> Optional[str]:
    """Render money the way the API and history snapshots carry it: "65.00"."""
    amount = to_money(value)
    return None if amount is None else f"{amount:.2f}"
