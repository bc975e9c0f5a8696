"""Product catalog model with ledger-managed stock.

Business rules implemented:
- SKU is unique and normalised to uppercase.
- Price must be greater than zero; a sale price, when set, must be lower.
- ``stock_quantity`` is never negative and ``reserved_quantity`` never
  exceeds it (database check constraints). Both columns are mutated only
  by ``modules.inventory.ledger.InventoryLedger``.
- Only ``published`` products can be sold.
"""

from __future__ import annotations

from decimal import Decimal

import structlog
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import BaseModel

logger = structlog.get_logger(__name__)


class ProductStatus(models.TextChoices):
    PUBLISHED = "published", "Published"
    DRAFT = "draft", "Draft"


class Product(BaseModel):
    """Catalog product.

    ``available_quantity`` (stock minus active reservations) is what a
    shopper can still buy; ``stock_quantity`` only drops when a
    reservation is committed by a paid checkout.
    """

    sku = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    sale_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    stock_quantity = models.PositiveIntegerField(default=0)
    reserved_quantity = models.PositiveIntegerField(default=0, editable=False)
    status = models.CharField(
        max_length=20,
        choices=ProductStatus.choices,
        default=ProductStatus.PUBLISHED,
    )
    category = models.CharField(max_length=100, blank=True, default="")
    size = models.CharField(max_length=50, blank=True, default="")
    color = models.CharField(max_length=50, blank=True, default="")
    featured = models.BooleanField(default=False)

    class Meta:
        db_table = "products"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["status"], name="products_status_idx"),
            models.Index(fields=["category"], name="products_category_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price__gt=0),
                name="products_price_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(reserved_quantity__lte=models.F("stock_quantity")),
                name="products_reserved_within_stock",
            ),
        ]

    # ------------------------------------------------------------------
    # Pricing / availability
    # ------------------------------------------------------------------

    @property
    def is_on_sale(self) -> bool:
        return self.sale_price is not None and self.sale_price < self.price

    @property
    def effective_price(self) -> Decimal:
        """Price charged at checkout: the sale price when it undercuts ``price``."""
        return self.sale_price if self.is_on_sale else self.price

    @property
    def available_quantity(self) -> int:
        return self.stock_quantity - self.reserved_quantity

    @property
    def is_sellable(self) -> bool:
        return self.status == ProductStatus.PUBLISHED

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def clean(self) -> None:
        super().clean()
        if self.sku:
            self.sku = self.sku.strip().upper()
        if self.price is not None and self.price <= 0:
            raise ValidationError({"price": "Price must be greater than zero."})
        if (
            self.sale_price is not None
            and self.price is not None
            and self.sale_price >= self.price
        ):
            raise ValidationError(
                {"sale_price": "Sale price must be lower than the regular price."}
            )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args, **kwargs) -> None:
        is_new = self._state.adding
        if self.sku:
            self.sku = self.sku.strip().upper()
        super().save(*args, **kwargs)
        if is_new:
            logger.info(
                "product_created",
                product_id=str(self.id),
                sku=self.sku,
                stock_quantity=self.stock_quantity,
            )

    def __str__(self) -> str:
        return f"{self.sku} - {self.name}"
