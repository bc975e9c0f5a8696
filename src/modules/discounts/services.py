"""Discount service layer.

Staff administration of discount codes plus ``record_redemption``, the
only place ``usage_count`` is incremented. Redemption must run inside the
caller's order transaction so a failed order never consumes a use.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog
from django.db import IntegrityError, transaction
from django.db.models import F, ProtectedError, Q

from modules.discounts.constants import GUEST_USER, DiscountErrorReason
from modules.discounts.dtos import (
    CreateDiscountDTO,
    UpdateDiscountDTO,
    check_discount_rules,
)
from modules.discounts.exceptions import (
    DiscountCodeAlreadyExists,
    DiscountCodeInUse,
    DiscountCodeNotFound,
    RedemptionRejected,
)
from modules.discounts.models import DiscountCode, DiscountRedemption
from modules.discounts.validator import MESSAGES, redemptions_by_user

logger = structlog.get_logger(__name__)

_UPDATABLE = (
    "description",
    "value",
    "min_purchase_amount",
    "max_discount_amount",
    "usage_limit",
    "per_user_limit",
    "buy_quantity",
    "get_quantity",
    "valid_from",
    "valid_until",
    "is_active",
)

# Columns without NULL; a partial update may only replace their value
_NOT_NULL = frozenset(
    {
        "description",
        "value",
        "min_purchase_amount",
        "per_user_limit",
        "valid_from",
        "is_active",
    }
)


class DiscountService:
    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_code(self, dto: CreateDiscountDTO) -> DiscountCode:
        if DiscountCode.objects.filter(code__iexact=dto.code).exists():
            raise DiscountCodeAlreadyExists(f"Discount code {dto.code} already exists.")

        data = dto.model_dump(exclude_none=True)
        try:
            discount = DiscountCode.objects.create(**data)
        except IntegrityError as exc:
            raise DiscountCodeAlreadyExists(
                f"Discount code {dto.code} already exists."
            ) from exc
        logger.info(
            "discount.created",
            discount_id=str(discount.id),
            code=discount.code,
            discount_type=discount.discount_type,
        )
        return discount

    @transaction.atomic
    def update_code(self, id: str, dto: UpdateDiscountDTO) -> DiscountCode:
        """Raises ``ValueError`` when the merged code breaks a type rule."""
        discount = self._get_for_update(id)
        changes = dto.model_dump(exclude_unset=True)
        cleared = sorted(f for f in _NOT_NULL if f in changes and changes[f] is None)
        if cleared:
            raise ValueError(f"{', '.join(cleared)} cannot be null.")
        for field in _UPDATABLE:
            if field in changes:
                setattr(discount, field, changes[field])

        check_discount_rules(
            discount.discount_type,
            discount.value,
            discount.buy_quantity,
            discount.get_quantity,
            discount.valid_from,
            discount.valid_until,
        )
        if discount.usage_limit is not None and discount.usage_limit < discount.usage_count:
            raise ValueError("usage_limit cannot be lower than the current usage count.")

        discount.save()
        logger.info("discount.updated", discount_id=str(discount.id), fields=sorted(changes))
        return discount

    @transaction.atomic
    def toggle_active(self, id: str) -> DiscountCode:
        discount = self._get_for_update(id)
        discount.is_active = not discount.is_active
        discount.save(update_fields=["is_active"])
        logger.info(
            "discount.toggled", discount_id=str(discount.id), is_active=discount.is_active
        )
        return discount

    @transaction.atomic
    def delete_code(self, id: str) -> None:
        discount = self._get_for_update(id)
        try:
            discount.delete()
        except ProtectedError as exc:
            raise DiscountCodeInUse(
                f"Discount code {discount.code} has redemptions."
            ) from exc
        logger.info("discount.deleted", discount_id=str(id))

    def get_code(self, id: str) -> DiscountCode:
        discount = DiscountCode.objects.filter(id=id).first()
        if discount is None:
            raise DiscountCodeNotFound(f"Discount code {id} not found.")
        return discount

    # ------------------------------------------------------------------
    # Redemption
    # ------------------------------------------------------------------

    def record_redemption(
        self,
        code_id: UUID,
        order,
        user_id: Optional[str],
        amount: Decimal,
    ) -> DiscountRedemption:
        """Consume one use of a code for ``order``.

        Must be called inside an open transaction. Locks the code row,
        re-checks the shopper's own limit, then increments ``usage_count``
        only while it is below ``usage_limit``.

        Raises:
            RedemptionRejected: a limit was reached since validation.
        """
        discount = DiscountCode.objects.select_for_update().get(id=code_id)

        if user_id and redemptions_by_user(discount, user_id) >= discount.per_user_limit:
            reason = DiscountErrorReason.PER_USER_LIMIT_EXCEEDED
            raise RedemptionRejected(str(reason), MESSAGES[reason])

        updated = (
            DiscountCode.objects.filter(id=code_id)
            .filter(Q(usage_limit__isnull=True) | Q(usage_count__lt=F("usage_limit")))
            .update(usage_count=F("usage_count") + 1)
        )
        if not updated:
            reason = DiscountErrorReason.USAGE_LIMIT_EXCEEDED
            raise RedemptionRejected(str(reason), MESSAGES[reason])

        redemption = DiscountRedemption.objects.create(
            discount_code=discount,
            order=order,
            user_id=user_id or GUEST_USER,
            amount_applied=amount,
        )
        logger.info(
            "discount.redeemed",
            code=discount.code,
            order_id=str(order.id),
            amount=str(amount),
        )
        return redemption

    @staticmethod
    def _get_for_update(id: str) -> DiscountCode:
        discount = DiscountCode.objects.select_for_update().filter(id=id).first()
        if discount is None:
            raise DiscountCodeNotFound(f"Discount code {id} not found.")
        return discount
