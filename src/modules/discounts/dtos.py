"""Discount DTOs.

Immutable Pydantic v2 models shared by the validator, the checkout
orchestrator and the staff API.

- ``DiscountApplication``: a code that passed validation, with the
  amount it takes off the subtotal.
- ``DiscountError``: a code that failed validation, with the reason.
- ``CreateDiscountDTO`` / ``UpdateDiscountDTO``: staff administration input.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from modules.discounts.constants import DiscountType


class DiscountApplication(BaseModel):
    model_config = ConfigDict(frozen=True)

    code_id: UUID
    code: str
    discount_type: str
    amount: Decimal
    free_shipping: bool = False


class DiscountError(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    reason: str
    message: str


DiscountResult = Union[DiscountApplication, DiscountError]


def check_discount_rules(
    discount_type: Optional[str],
    value: Optional[Decimal],
    buy_quantity: Optional[int],
    get_quantity: Optional[int],
    valid_from: Optional[datetime],
    valid_until: Optional[datetime],
) -> None:
    if discount_type == DiscountType.PERCENTAGE and value is not None:
        if value <= 0 or value > 100:
            raise ValueError("Percentage value must be between 0 and 100.")
    if discount_type == DiscountType.FIXED and value is not None and value <= 0:
        raise ValueError("Fixed discount value must be greater than zero.")
    if discount_type == DiscountType.BUY_X_GET_Y:
        if not buy_quantity or not get_quantity:
            raise ValueError("buy_x_get_y codes need buy_quantity and get_quantity.")
    if valid_from and valid_until and valid_until <= valid_from:
        raise ValueError("valid_until must be after valid_from.")


class CreateDiscountDTO(BaseModel):
    """Validates:
    - percentage values are in (0, 100]; fixed values are positive.
    - ``buy_x_get_y`` carries both quantities.
    - the validity window is not empty.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    description: str = ""
    discount_type: DiscountType
    value: Decimal = Decimal("0.00")
    min_purchase_amount: Decimal = Decimal("0.00")
    max_discount_amount: Optional[Decimal] = None
    usage_limit: Optional[int] = None
    per_user_limit: int = 1
    buy_quantity: Optional[int] = None
    get_quantity: Optional[int] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool = True

    @field_validator("code")
    @classmethod
    def normalise_code(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("Code must not be blank.")
        return v

    @model_validator(mode="after")
    def check_rules(self):
        check_discount_rules(
            self.discount_type,
            self.value,
            self.buy_quantity,
            self.get_quantity,
            self.valid_from,
            self.valid_until,
        )
        return self


class UpdateDiscountDTO(BaseModel):
    """Partial update; ``None`` means "leave unchanged"."""

    model_config = ConfigDict(frozen=True)

    description: Optional[str] = None
    value: Optional[Decimal] = None
    min_purchase_amount: Optional[Decimal] = None
    max_discount_amount: Optional[Decimal] = None
    usage_limit: Optional[int] = None
    per_user_limit: Optional[int] = None
    buy_quantity: Optional[int] = None
    get_quantity: Optional[int] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: Optional[bool] = None
