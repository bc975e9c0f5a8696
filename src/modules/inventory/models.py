"""Stock reservation model.

A reservation is a temporary hold against a product's stock. While
``ACTIVE`` its quantity is counted in ``Product.reserved_quantity``; it
then ends exactly once as ``COMMITTED`` (stock decremented), ``RELEASED``
or ``EXPIRED`` (hold dropped, stock untouched).
"""

from __future__ import annotations

from django.db import models

from modules.core.models import BaseModel


class ReservationStatus(models.TextChoices):
    ACTIVE = "ACTIVE", "Active"
    COMMITTED = "COMMITTED", "Committed"
    RELEASED = "RELEASED", "Released"
    EXPIRED = "EXPIRED", "Expired"


class StockReservation(BaseModel):
    product: models.ForeignKey = models.ForeignKey(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="reservations",
    )
    quantity: models.PositiveIntegerField = models.PositiveIntegerField()
    status: models.CharField = models.CharField(
        max_length=20,
        choices=ReservationStatus.choices,
        default=ReservationStatus.ACTIVE,
    )
    expires_at: models.DateTimeField = models.DateTimeField()
    checkout_ref: models.CharField = models.CharField(
        max_length=64, blank=True, default=""
    )
    closed_at: models.DateTimeField = models.DateTimeField(
        null=True, blank=True, default=None
    )

    class Meta:
        db_table = "stock_reservations"
        ordering = ["created_at"]
        indexes = [
            models.Index(
                fields=["status", "expires_at"],
                name="reservations_status_exp_idx",
            ),
            models.Index(fields=["checkout_ref"], name="reservations_checkout_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="reservations_quantity_positive",
            ),
        ]

    @property
    def is_active(self) -> bool:
        return self.status == ReservationStatus.ACTIVE

    def __str__(self) -> str:
        return f"{self.product_id} x{self.quantity} [{self.status}]"
