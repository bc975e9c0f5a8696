"""Pricing calculator.

Pure functions over a cart snapshot and an optional discount application:

    total = subtotal - discount_amount + shipping_cost   (never below 0)

Shipping is free when the subtotal is strictly above the threshold or
when a ``free_shipping`` code is applied; otherwise the flat rate.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from django.conf import settings
from pydantic import BaseModel, ConfigDict

from modules.checkout.cart import CartSnapshot
from modules.core.money import ZERO, to_money
from modules.discounts.dtos import DiscountApplication

CENT = Decimal("0.01")


class ShippingRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    threshold: Decimal = Decimal("100.00")
    flat_rate: Decimal = Decimal("10.00")

    @classmethod
    def from_settings(cls) -> ShippingRule:
        return cls(
            threshold=settings.FREE_SHIPPING_THRESHOLD,
            flat_rate=settings.FLAT_SHIPPING_RATE,
        )


class PriceBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    subtotal: Decimal
    discount_amount: Decimal
    shipping_cost: Decimal
    total: Decimal
    shipping_waived: bool = False


def shipping_cost(subtotal: Decimal, rule: ShippingRule) -> Decimal:
    return ZERO if subtotal > rule.threshold else to_money(rule.flat_rate)


def amount_for_free_shipping(subtotal: Decimal, rule: ShippingRule) -> Decimal:
    """Smallest top-up that makes shipping free; 0 once it already is.

    Free shipping needs a subtotal strictly above the threshold, so the
    answer is one cent more than the plain difference.
    """
    if subtotal > rule.threshold:
        return ZERO
    return to_money(rule.threshold - subtotal + CENT)


def price_subtotal(
    subtotal: Decimal,
    application: Optional[DiscountApplication],
    rule: ShippingRule,
) -> PriceBreakdown:
    subtotal = to_money(subtotal)
    discount = ZERO
    waived = False
    if application is not None:
        discount = min(to_money(application.amount), subtotal)
        waived = application.free_shipping

    shipping = ZERO if waived else shipping_cost(subtotal, rule)
    total = max(subtotal - discount + shipping, ZERO)
    return PriceBreakdown(
        subtotal=subtotal,
        discount_amount=discount,
        shipping_cost=shipping,
        total=to_money(total),
        shipping_waived=waived,
    )


def calculate(
    cart: CartSnapshot,
    application: Optional[DiscountApplication],
    rule: ShippingRule,
) -> PriceBreakdown:
    return price_subtotal(cart.subtotal, application, rule)
