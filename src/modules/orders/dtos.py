"""Order DTOs for the Service Layer.

Framework-agnostic, immutable (``frozen=True``) Pydantic v2 contracts.

- ``CreateOrderItemDTO``: one priced line taken from the cart snapshot.
- ``CreateOrderDTO``: everything the checkout orchestrator persists for a
  paid order.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from modules.orders.constants import OrderStatus


class CreateOrderItemDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: UUID
    product_name: str
    product_sku: str = ""
    size: str = ""
    color: str = ""
    quantity: int
    unit_price: Decimal

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v


class CreateOrderDTO(BaseModel):
    """Validates:
    - ``items`` must contain at least one item.
    - ``total == max(subtotal - discount_amount + shipping_cost, 0)``.
    """

    model_config = ConfigDict(frozen=True)

    user_id: Optional[str] = None
    status: OrderStatus = OrderStatus.PAID
    items: List[CreateOrderItemDTO]
    subtotal: Decimal
    discount_amount: Decimal = Decimal("0.00")
    shipping_cost: Decimal = Decimal("0.00")
    total: Decimal
    currency: str = "USD"
    shipping_address: Dict[str, Any]
    payment_reference: str = ""
    discount_code: Optional[str] = None
    idempotency_key: Optional[str] = None

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(
        cls, v: List[CreateOrderItemDTO]
    ) -> List[CreateOrderItemDTO]:
        if not v:
            raise ValueError("Order must have at least one item.")
        return v

    @model_validator(mode="after")
    def totals_must_add_up(self):
        expected = max(
            self.subtotal - self.discount_amount + self.shipping_cost, Decimal("0")
        )
        if self.total != expected:
            raise ValueError(
                f"Total {self.total} does not match subtotal - discount + shipping "
                f"({expected})."
            )
        return self
