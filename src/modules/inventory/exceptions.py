"""Inventory domain exceptions.

Raised by ``InventoryLedger``; the checkout orchestrator turns them into
rollbacks and typed API errors.
"""

from __future__ import annotations

from uuid import UUID


class InsufficientStock(Exception):
    """Requested quantity exceeds what is available (stock minus holds)."""

    def __init__(self, product_id: UUID, requested: int, available: int) -> None:
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Product {product_id}: requested {requested}, available {available}."
        )


class ProductUnavailable(Exception):
    """The product does not exist or is not published."""

    def __init__(self, product_id: UUID) -> None:
        self.product_id = product_id
        super().__init__(f"Product {product_id} is not available for sale.")


class ReservationNotFound(Exception):
    """No reservation exists for the given handle."""


class ReservationNotActive(Exception):
    """A released or expired reservation cannot be committed."""
