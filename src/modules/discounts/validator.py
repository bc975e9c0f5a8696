"""Discount code validation and discount computation.

``DiscountValidator.validate`` runs the checks below in order and stops
at the first failure, returning a ``DiscountError`` rather than raising:

1. the code exists and is active          -> ``CodeNotFound``
2. ``valid_from`` has been reached        -> ``CodeNotYetActive``
3. ``valid_until`` has not passed         -> ``CodeExpired``
4. subtotal reaches the minimum purchase  -> ``MinimumNotMet``
5. global usage limit not reached         -> ``UsageLimitExceeded``
6. shopper's own limit not reached        -> ``PerUserLimitExceeded`` (guests skip)
7. the discount type is known             -> ``UnsupportedDiscountType``

Validation never changes ``usage_count``; redemption happens in
``DiscountService.record_redemption`` when the order is persisted.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, Optional, Protocol, Sequence

import structlog
from django.utils import timezone

from modules.core.money import ZERO, to_money
from modules.discounts.constants import DiscountErrorReason, DiscountType
from modules.discounts.dtos import DiscountApplication, DiscountError, DiscountResult
from modules.discounts.models import DiscountCode, DiscountRedemption

logger = structlog.get_logger(__name__)

MESSAGES: Dict[str, str] = {
    DiscountErrorReason.CODE_NOT_FOUND: "This discount code is not valid.",
    DiscountErrorReason.CODE_NOT_YET_ACTIVE: "This discount code is not active yet.",
    DiscountErrorReason.CODE_EXPIRED: "This discount code has expired.",
    DiscountErrorReason.MINIMUM_NOT_MET: "Your order does not reach the minimum for this code.",
    DiscountErrorReason.USAGE_LIMIT_EXCEEDED: "This discount code has reached its usage limit.",
    DiscountErrorReason.PER_USER_LIMIT_EXCEEDED: "You have already used this discount code.",
    DiscountErrorReason.UNSUPPORTED_DISCOUNT_TYPE: "This discount code cannot be applied.",
}


class PricedLine(Protocol):
    quantity: int
    unit_price: Decimal


def redemptions_by_user(discount: DiscountCode, user_id: str) -> int:
    return DiscountRedemption.objects.filter(
        discount_code=discount, user_id=user_id
    ).count()


class DiscountValidator:
    def __init__(self) -> None:
        self._calculators: Dict[
            str, Callable[[DiscountCode, Decimal, Sequence[PricedLine]], Decimal]
        ] = {
            DiscountType.PERCENTAGE: self._percentage,
            DiscountType.FIXED: self._fixed,
            DiscountType.FREE_SHIPPING: self._free_shipping,
            DiscountType.BUY_X_GET_Y: self._buy_x_get_y,
        }

    def validate(
        self,
        code: str,
        subtotal: Decimal,
        user_id: Optional[str] = None,
        lines: Sequence[PricedLine] = (),
        now: Optional[datetime] = None,
    ) -> DiscountResult:
        normalised = (code or "").strip().upper()
        now = now or timezone.now()
        subtotal = to_money(subtotal)

        discount = DiscountCode.objects.filter(code__iexact=normalised).first()
        if discount is None or not discount.is_active:
            return self._error(normalised, DiscountErrorReason.CODE_NOT_FOUND)
        if discount.valid_from and now < discount.valid_from:
            return self._error(normalised, DiscountErrorReason.CODE_NOT_YET_ACTIVE)
        if discount.valid_until and now >= discount.valid_until:
            return self._error(normalised, DiscountErrorReason.CODE_EXPIRED)
        if subtotal < discount.min_purchase_amount:
            return self._error(normalised, DiscountErrorReason.MINIMUM_NOT_MET)
        if (
            discount.usage_limit is not None
            and discount.usage_count >= discount.usage_limit
        ):
            return self._error(normalised, DiscountErrorReason.USAGE_LIMIT_EXCEEDED)
        if user_id and redemptions_by_user(discount, user_id) >= discount.per_user_limit:
            return self._error(normalised, DiscountErrorReason.PER_USER_LIMIT_EXCEEDED)

        calculator = self._calculators.get(discount.discount_type)
        if calculator is None:
            return self._error(
                normalised, DiscountErrorReason.UNSUPPORTED_DISCOUNT_TYPE
            )

        amount = min(to_money(calculator(discount, subtotal, lines)), subtotal)
        application = DiscountApplication(
            code_id=discount.id,
            code=discount.code,
            discount_type=discount.discount_type,
            amount=max(amount, ZERO),
            free_shipping=discount.discount_type == DiscountType.FREE_SHIPPING,
        )
        logger.info(
            "discount.validated",
            code=discount.code,
            discount_type=discount.discount_type,
            amount=str(application.amount),
        )
        return application

    # ------------------------------------------------------------------
    # Calculators
    # ------------------------------------------------------------------

    @staticmethod
    def _cap(discount: DiscountCode, amount: Decimal) -> Decimal:
        if discount.max_discount_amount is not None:
            return min(amount, discount.max_discount_amount)
        return amount

    def _percentage(self, discount, subtotal, lines) -> Decimal:
        return self._cap(discount, to_money(subtotal * discount.value / 100))

    def _fixed(self, discount, subtotal, lines) -> Decimal:
        return min(discount.value, subtotal)

    def _free_shipping(self, discount, subtotal, lines) -> Decimal:
        return ZERO

    def _buy_x_get_y(self, discount, subtotal, lines) -> Decimal:
        """Every full group of ``buy + get`` units on a line gets ``get`` units free."""
        buy, get = discount.buy_quantity or 0, discount.get_quantity or 0
        if buy < 1 or get < 1:
            return ZERO
        free = sum(
            (line.quantity // (buy + get)) * get * line.unit_price for line in lines
        )
        return self._cap(discount, to_money(free))

    @staticmethod
    def _error(code: str, reason: str) -> DiscountError:
        logger.info("discount.rejected", code=code, reason=str(reason))
        return DiscountError(code=code, reason=str(reason), message=MESSAGES[reason])
