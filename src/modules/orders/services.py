"""Order service layer (Use Cases).

Fulfilment after checkout: status transitions validated against the
state machine, cancellation with stock returned through the inventory
ledger, and owner-scoped queries. Write operations are atomic; the
service defines the unit-of-work boundary.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional
from uuid import UUID

import structlog
from django.db import models, transaction

from modules.orders.constants import OrderStatus
from modules.orders.exceptions import InvalidOrderStatus, OrderNotFound

if TYPE_CHECKING:
    from modules.inventory.ledger import InventoryLedger
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderService:
    """Application service for Order use-cases.

    Receives the repository and the inventory ledger via constructor
    injection.
    """

    def __init__(
        self, order_repository: IOrderRepository, ledger: InventoryLedger
    ) -> None:
        self._order_repo = order_repository
        self._ledger = ledger

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def update_status(
        self,
        order_id: UUID,
        new_status: str,
        notes: str = "",
        changed_by: str = "",
    ) -> Order:
        """Move an order forward in the fulfilment flow.

        Raises:
            OrderNotFound: order does not exist.
            InvalidOrderStatus: transition is not allowed.
        """
        order = self._order_repo.get_for_update(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")

        new_status = new_status.lower()
        log = logger.bind(
            order_id=str(order_id),
            current_status=order.status,
            new_status=new_status,
        )
        if new_status == OrderStatus.CANCELLED:
            return self.cancel_order(order_id, notes=notes, changed_by=changed_by)
        if not order.can_transition_to(new_status):
            log.warning("order.invalid_transition")
            raise InvalidOrderStatus(
                f"Cannot transition from {order.status} to {new_status}."
            )

        old_status = order.status
        order.status = new_status
        self._order_repo.save(order)
        self._order_repo.add_history(
            order_id=order.id,
            status=new_status,
            notes=notes,
            old_status=old_status,
            changed_by=changed_by,
        )

        log.info("order.status_updated")
        return self._order_repo.get_by_id(str(order_id))

    @transaction.atomic
    def cancel_order(
        self, order_id: UUID, notes: str = "", changed_by: str = ""
    ) -> Order:
        """Cancel an order and return its units to stock.

        The order row is locked first so two cancellations cannot restock
        twice.

        Raises:
            OrderNotFound: order does not exist.
            InvalidOrderStatus: the order has already shipped or is closed.
        """
        order = self._order_repo.get_for_update(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")

        log = logger.bind(order_id=str(order_id), current_status=order.status)
        if not order.can_transition_to(OrderStatus.CANCELLED):
            log.warning("order.cancel_not_allowed")
            raise InvalidOrderStatus(f"Cannot cancel order in status {order.status}.")

        for item in sorted(order.items.all(), key=lambda i: str(i.product_id)):
            self._ledger.restock(item.product_id, item.quantity)

        old_status = order.status
        order.status = OrderStatus.CANCELLED
        self._order_repo.save(order)
        self._order_repo.add_history(
            order_id=order.id,
            status=OrderStatus.CANCELLED,
            notes=notes or "Order cancelled",
            old_status=old_status,
            changed_by=changed_by,
        )

        log.info("order.cancelled")
        return self._order_repo.get_by_id(str(order_id))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str, user_id: Optional[str] = None) -> Order:
        """Retrieve an order; with ``user_id`` only that shopper's orders match.

        Raises:
            OrderNotFound: missing, or owned by someone else.
        """
        order = self._order_repo.get_by_id(order_id)
        if not order or (user_id is not None and order.user_id != user_id):
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def list_orders(self, user_id: Optional[str] = None) -> models.QuerySet:
        """All orders, or only ``user_id``'s when given."""
        filters = {"user_id": user_id} if user_id is not None else None
        return self._order_repo.list(filters)
