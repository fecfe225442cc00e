# pharmacy_pos/utils/money.py
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

Q2 = Decimal("0.01")
ZERO = Decimal("0")


def d(x) -> Decimal:
    """Coerce DB/JSON values to Decimal without going through float."""
    if isinstance(x, Decimal):
        return x
    try:
        return Decimal(str(x if x is not None else 0))
    except InvalidOperation:
        raise ValueError(f"Not a decimal amount: {x!r}")


def q2(x) -> Decimal:
    return d(x).quantize(Q2, rounding=ROUND_HALF_UP)
