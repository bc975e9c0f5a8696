"""Django ORM implementation of the Order repository.

Writes run inside ``transaction.atomic()`` so the Order aggregate (order,
items, history, outbox event) is persisted all-or-nothing. Status
updates lock the order row with ``select_for_update()``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import models, transaction

from modules.core.models import OutboxEvent
from modules.orders.constants import OUTBOX_TOPIC
from modules.orders.dtos import CreateOrderDTO
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


def order_placed_payload(order: Order, items) -> Dict[str, Any]:
    return {
        "order_id": str(order.id),
        "order_number": order.order_number,
        "user_id": order.user_id,
        "total": str(order.total),
        "currency": order.currency,
        "discount_code": order.discount_code,
        "items": [
            {
                "product_id": str(item.product_id),
                "quantity": item.quantity,
                "unit_price": str(item.unit_price),
            }
            for item in items
        ],
    }


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    @transaction.atomic
    def create(self, dto: CreateOrderDTO) -> Order:
        order = Order(
            user_id=dto.user_id,
            status=dto.status,
            subtotal=dto.subtotal,
            discount_amount=dto.discount_amount,
            shipping_cost=dto.shipping_cost,
            total=dto.total,
            currency=dto.currency,
            shipping_address=dto.shipping_address,
            payment_reference=dto.payment_reference,
            discount_code=dto.discount_code,
            idempotency_key=dto.idempotency_key,
        )
        order.save()

        items = []
        for item_dto in dto.items:
            item = OrderItem(
                order=order,
                product_id=item_dto.product_id,
                product_name=item_dto.product_name,
                product_sku=item_dto.product_sku,
                size=item_dto.size,
                color=item_dto.color,
                quantity=item_dto.quantity,
                unit_price=item_dto.unit_price,
            )
            item.save()
            items.append(item)

        self.add_history(order.id, dto.status, notes="Order placed")
        OutboxEvent.record(
            "OrderPlaced", order.id, order_placed_payload(order, items), OUTBOX_TOPIC
        )

        logger.info("order.created", order_id=str(order.id), item_count=len(items))
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def _base_queryset(self) -> models.QuerySet:
        return Order.objects.prefetch_related("items", "status_history")

    def get_by_id(self, id: str) -> Optional[Order]:
        """Return ``None`` for non-existent or malformed IDs."""
        try:
            return self._base_queryset().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> models.QuerySet:
        queryset = self._base_queryset()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def get_for_update(self, id: str) -> Optional[Order]:
        try:
            return (
                Order.objects.select_for_update()
                .prefetch_related("items")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        entity.save()
        logger.info("order.saved", order_id=str(entity.id))
        return entity

    def add_history(
        self,
        order_id: UUID,
        status: str,
        notes: str = "",
        old_status: Optional[str] = None,
        changed_by: str = "",
    ) -> OrderStatusHistory:
        history = OrderStatusHistory.objects.create(
            order_id=order_id,
            old_status=old_status,
            new_status=status,
            changed_by=changed_by or "",
            notes=notes,
        )
        logger.info(
            "order.history_added",
            order_id=str(order_id),
            old_status=old_status,
            new_status=status,
        )
        return history
