"""Immutable cart snapshot.

Built server-side from catalog prices when a checkout starts; nothing
downstream reads live cart or product prices again.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Sequence, Tuple
from uuid import UUID

import structlog
from pydantic import BaseModel, ConfigDict, field_validator

from modules.checkout.exceptions import ProductUnavailableError
from modules.core.money import ZERO, to_money
from modules.products.models import Product

if TYPE_CHECKING:
    from modules.checkout.dtos import CheckoutLineDTO

logger = structlog.get_logger(__name__)


class CartLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity: int
    unit_price: Decimal
    name: str
    sku: str = ""
    size: str = ""
    color: str = ""

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


class CartSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    lines: Tuple[CartLine, ...]

    @field_validator("lines")
    @classmethod
    def lines_must_not_be_empty(cls, v):
        if not v:
            raise ValueError("Cart must contain at least one line.")
        return v

    @property
    def subtotal(self) -> Decimal:
        return to_money(sum((line.line_total for line in self.lines), ZERO))


def build_cart_snapshot(lines: Sequence[CheckoutLineDTO]) -> CartSnapshot:
    """Price the requested lines from the catalog.

    Raises:
        ProductUnavailableError: a product is missing or not published.
    """
    products = {
        product.id: product
        for product in Product.objects.filter(id__in={l.product_id for l in lines})
    }
    snapshot_lines = []
    for line in lines:
        product = products.get(line.product_id)
        if product is None or not product.is_sellable:
            raise ProductUnavailableError(line.product_id)

        price = to_money(product.effective_price)
        if line.unit_price is not None and to_money(line.unit_price) != price:
            logger.warning(
                "checkout.price_drift",
                product_id=str(product.id),
                client_price=str(line.unit_price),
                catalog_price=str(price),
            )
        snapshot_lines.append(
            CartLine(
                product_id=product.id,
                quantity=line.quantity,
                unit_price=price,
                name=product.name,
                sku=product.sku,
                size=line.size or product.size,
                color=line.color or product.color,
            )
        )
    return CartSnapshot(lines=tuple(snapshot_lines))
