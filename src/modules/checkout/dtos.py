"""Checkout DTOs.

Request payloads arrive in camelCase (``shippingAddress``, ``productId``);
``alias_generator=to_camel`` maps them onto these immutable models.

- ``CheckoutCommand``: a validated checkout request.
- ``OrderConfirmation``: the success result.
- ``CheckoutOutcome``: what the endpoint answers, fresh or replayed.
"""

from __future__ import annotations

import hashlib
import json
import re
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_CAMEL = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class CheckoutLineDTO(BaseModel):
    """``unit_price`` is what the client displayed; used for drift logging only."""

    model_config = _CAMEL

    product_id: UUID
    quantity: int = Field(ge=1, le=100)
    unit_price: Optional[Decimal] = None
    size: str = ""
    color: str = ""


class ShippingAddressDTO(BaseModel):
    model_config = _CAMEL

    full_name: str = Field(min_length=1, max_length=255)
    email: str = Field(max_length=254)
    phone: str = Field(default="", max_length=32)
    address_line1: str = Field(min_length=1, max_length=255)
    address_line2: str = Field(default="", max_length=255)
    city: str = Field(min_length=1, max_length=100)
    state: str = Field(default="", max_length=100)
    postal_code: str = Field(min_length=1, max_length=20)
    country: str = Field(min_length=2, max_length=2)

    @field_validator("full_name", "address_line1", "city", "postal_code")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("This field may not be blank.")
        return v

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        v = v.strip().lower()
        if not _EMAIL_RE.match(v):
            raise ValueError("Enter a valid email address.")
        return v

    @field_validator("country")
    @classmethod
    def country_code(cls, v: str) -> str:
        return v.strip().upper()


class CheckoutCommand(BaseModel):
    model_config = _CAMEL

    idempotency_key: str = Field(min_length=8, max_length=255)
    user_id: Optional[str] = None
    cart: List[CheckoutLineDTO] = Field(min_length=1, max_length=50)
    shipping_address: ShippingAddressDTO
    discount_code: Optional[str] = None
    client_total: Optional[Decimal] = None

    @field_validator("discount_code")
    @classmethod
    def normalise_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip().upper() or None

    def request_hash(self) -> str:
        """sha256 over what the shopper asked for; advisory prices are left out."""
        payload = {
            "user_id": self.user_id,
            "discount_code": self.discount_code,
            "shipping_address": self.shipping_address.model_dump(),
            "cart": sorted(
                (
                    {
                        "product_id": str(line.product_id),
                        "quantity": line.quantity,
                        "size": line.size,
                        "color": line.color,
                    }
                    for line in self.cart
                ),
                key=lambda item: (item["product_id"], item["size"], item["color"]),
            ),
        }
        body = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(body.encode("utf-8")).hexdigest()


class OrderConfirmation(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: UUID
    order_number: str
    status: str
    total: Decimal

    def to_body(self) -> Dict[str, Any]:
        return {
            "orderId": str(self.order_id),
            "orderNumber": self.order_number,
            "status": self.status,
            "total": str(self.total),
        }


class CheckoutOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    status_code: int
    body: Dict[str, Any]
    replayed: bool = False
