"""Discount codes and their redemptions.

Business rules implemented:
- Codes are stored upper-case and matched case-insensitively.
- ``usage_count`` never exceeds ``usage_limit`` (check constraint; the
  increment itself is a conditional ``UPDATE`` in ``DiscountService``).
- A redemption row is written once per paid order and never changed.
"""

from __future__ import annotations

from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel
from modules.discounts.constants import DiscountType


class DiscountCode(BaseModel):
    code: models.CharField = models.CharField(max_length=50, unique=True)
    description: models.CharField = models.CharField(
        max_length=255, blank=True, default=""
    )
    discount_type: models.CharField = models.CharField(
        max_length=20, choices=DiscountType.choices
    )
    value: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    min_purchase_amount: models.DecimalField = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("0.00")
    )
    max_discount_amount: models.DecimalField = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True
    )
    usage_limit: models.PositiveIntegerField = models.PositiveIntegerField(
        null=True, blank=True
    )
    usage_count: models.PositiveIntegerField = models.PositiveIntegerField(
        default=0, editable=False
    )
    per_user_limit: models.PositiveIntegerField = models.PositiveIntegerField(default=1)
    buy_quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        null=True, blank=True
    )
    get_quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        null=True, blank=True
    )
    valid_from: models.DateTimeField = models.DateTimeField(default=timezone.now)
    valid_until: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    is_active: models.BooleanField = models.BooleanField(default=True)

    class Meta:
        db_table = "discount_codes"
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(usage_limit__isnull=True)
                | models.Q(usage_count__lte=models.F("usage_limit")),
                name="discount_usage_within_limit",
            ),
            models.CheckConstraint(
                condition=models.Q(value__gte=0),
                name="discount_value_non_negative",
            ),
        ]

    def save(self, *args, **kwargs) -> None:
        if self.code:
            self.code = self.code.strip().upper()
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.code} ({self.discount_type})"


class DiscountRedemption(BaseModel):
    discount_code: models.ForeignKey = models.ForeignKey(
        DiscountCode,
        on_delete=models.PROTECT,
        related_name="redemptions",
    )
    order: models.OneToOneField = models.OneToOneField(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="discount_redemption",
    )
    user_id: models.CharField = models.CharField(max_length=255)
    amount_applied: models.DecimalField = models.DecimalField(
        max_digits=12, decimal_places=2
    )

    class Meta:
        db_table = "discount_redemptions"
        ordering = ["created_at"]
        indexes = [
            models.Index(
                fields=["discount_code", "user_id"],
                name="redemptions_code_user_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.discount_code_id} -> {self.order_id}"
