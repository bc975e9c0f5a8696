"""Money helpers. Amounts are ``Decimal`` rounded half-up to cents."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Union[Decimal, int, str]) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)
