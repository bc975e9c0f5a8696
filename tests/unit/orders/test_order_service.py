"""Unit tests for order fulfilment: state machine, OrderService, repository."""

from __future__ import annotations

import uuid
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from modules.core.models import OutboxEvent
from modules.inventory.ledger import InventoryLedger
from modules.orders.constants import OrderStatus
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO
from modules.orders.exceptions import InvalidOrderStatus, OrderNotFound
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def repository():
    return OrderDjangoRepository()


@pytest.fixture()
def service(repository):
    return OrderService(order_repository=repository, ledger=InventoryLedger())


def _order_dto(product, **overrides) -> CreateOrderDTO:
    data = {
        "user_id": "shopper-1",
        "items": [
            CreateOrderItemDTO(
                product_id=product.id,
                product_name=product.name,
                product_sku=product.sku,
                quantity=2,
                unit_price=Decimal("40.00"),
            )
        ],
        "subtotal": Decimal("80.00"),
        "shipping_cost": Decimal("10.00"),
        "total": Decimal("90.00"),
        "shipping_address": {"city": "London"},
        "idempotency_key": "checkout-key-0001",
    }
    data.update(overrides)
    return CreateOrderDTO(**data)


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class TestOrderStateMachine:
    @pytest.mark.parametrize(
        "current, target, allowed",
        [
            (OrderStatus.PENDING, OrderStatus.PAID, True),
            (OrderStatus.PAID, OrderStatus.PROCESSING, True),
            (OrderStatus.PAID, OrderStatus.SHIPPED, False),
            (OrderStatus.PROCESSING, OrderStatus.SHIPPED, True),
            (OrderStatus.PROCESSING, OrderStatus.CANCELLED, True),
            (OrderStatus.SHIPPED, OrderStatus.DELIVERED, True),
            (OrderStatus.SHIPPED, OrderStatus.CANCELLED, False),
            (OrderStatus.DELIVERED, OrderStatus.CANCELLED, False),
            (OrderStatus.CANCELLED, OrderStatus.PAID, False),
        ],
    )
    def test_transitions(self, current, target, allowed):
        assert Order(status=current).can_transition_to(target) is allowed

    def test_order_number_format(self, make_order):
        order = make_order()
        assert order.order_number.startswith("ORD-")
        assert len(order.order_number) == len("ORD-20261017-ABC123")


# ---------------------------------------------------------------------------
# DTO / repository
# ---------------------------------------------------------------------------


class TestCreateOrder:
    def test_totals_must_add_up(self, product):
        with pytest.raises(ValidationError):
            _order_dto(product, total=Decimal("95.00"))

    def test_total_floored_at_zero(self, product):
        dto = _order_dto(
            product,
            discount_amount=Decimal("80.00"),
            shipping_cost=Decimal("0.00"),
            total=Decimal("0.00"),
        )
        assert dto.total == Decimal("0.00")

    def test_empty_items_rejected(self, product):
        with pytest.raises(ValidationError):
            _order_dto(product, items=[])

    def test_repository_writes_aggregate_and_event(self, repository, product):
        order = repository.create(_order_dto(product))

        assert order.status == OrderStatus.PAID
        assert order.items.count() == 1
        assert order.items.get().subtotal == Decimal("80.00")
        assert order.status_history.get().notes == "Order placed"
        event = OutboxEvent.objects.get(aggregate_id=str(order.id))
        assert event.event_type == "OrderPlaced"
        assert event.payload["total"] == "90.00"

    def test_get_by_malformed_id_returns_none(self, repository):
        assert repository.get_by_id("not-a-uuid") is None


# ---------------------------------------------------------------------------
# Status updates
# ---------------------------------------------------------------------------


class TestUpdateStatus:
    def test_forward_transition_records_history(self, service, make_order):
        order = make_order()

        updated = service.update_status(order.id, "PROCESSING", changed_by="staff-1")

        assert updated.status == OrderStatus.PROCESSING
        history = updated.status_history.first()
        assert history.old_status == OrderStatus.PAID
        assert history.new_status == OrderStatus.PROCESSING
        assert history.changed_by == "staff-1"

    def test_invalid_transition(self, service, make_order):
        order = make_order()
        with pytest.raises(InvalidOrderStatus):
            service.update_status(order.id, OrderStatus.DELIVERED)

    def test_missing_order(self, service):
        with pytest.raises(OrderNotFound):
            service.update_status(uuid.uuid4(), OrderStatus.PROCESSING)

    def test_cancelled_status_goes_through_cancellation(self, service, make_order):
        order = make_order(quantity=3)
        product = order.items.get().product

        service.update_status(order.id, OrderStatus.CANCELLED)

        product.refresh_from_db()
        assert product.stock_quantity == 13


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancelOrder:
    def test_cancel_returns_units_to_stock(self, service, make_product, make_order):
        product = make_product(stock_quantity=5)
        order = make_order(product=product, quantity=2)

        cancelled = service.cancel_order(order.id, notes="Customer request")

        product.refresh_from_db()
        assert cancelled.status == OrderStatus.CANCELLED
        assert product.stock_quantity == 7
        assert cancelled.status_history.first().notes == "Customer request"

    def test_shipped_order_cannot_be_cancelled(self, service, make_order):
        order = make_order(status=OrderStatus.SHIPPED)
        with pytest.raises(InvalidOrderStatus):
            service.cancel_order(order.id)

    def test_second_cancel_does_not_restock_twice(self, service, make_product, make_order):
        product = make_product(stock_quantity=5)
        order = make_order(product=product, quantity=2)
        service.cancel_order(order.id)

        with pytest.raises(InvalidOrderStatus):
            service.cancel_order(order.id)

        product.refresh_from_db()
        assert product.stock_quantity == 7

    def test_restock_goes_through_ledger(self, repository, make_order):
        ledger = MagicMock()
        order = make_order(quantity=4)
        item = order.items.get()

        OrderService(order_repository=repository, ledger=ledger).cancel_order(order.id)

        ledger.restock.assert_called_once_with(item.product_id, 4)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestQueries:
    def test_owner_can_read_order(self, service, make_order):
        order = make_order(user_id="shopper-1")
        assert service.get_order(str(order.id), user_id="shopper-1") == order

    def test_other_shopper_gets_not_found(self, service, make_order):
        order = make_order(user_id="shopper-1")
        with pytest.raises(OrderNotFound):
            service.get_order(str(order.id), user_id="shopper-2")

    def test_list_scoped_to_user(self, service, make_order):
        mine = make_order(user_id="shopper-1")
        make_order(user_id="shopper-2")
        assert list(service.list_orders("shopper-1")) == [mine]
        assert service.list_orders().count() == 2
