from decimal import Decimal

import pytest

from modules.core.money import ZERO, to_money

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    "value, expected",
    [
        (Decimal("10"), Decimal("10.00")),
        (Decimal("10.005"), Decimal("10.01")),
        (Decimal("10.004"), Decimal("10.00")),
        ("19.999", Decimal("20.00")),
        (3, Decimal("3.00")),
    ],
)
def test_to_money_rounds_half_up_to_cents(value, expected):
    assert to_money(value) == expected


def test_zero_has_two_places():
    assert str(ZERO) == "0.00"
