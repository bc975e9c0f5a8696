import itertools
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from modules.checkout.dtos import CheckoutCommand
from modules.core.authentication import IdentityUser
from modules.discounts.constants import DiscountType
from modules.discounts.models import DiscountCode
from modules.inventory.ledger import InventoryLedger
from modules.orders.constants import OrderStatus
from modules.orders.models import Order, OrderItem
from modules.products.models import Product, ProductStatus

User = get_user_model()

_sku_counter = itertools.count(1)


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@pytest.fixture()
def shopper():
    """Shopper authenticated through the identity provider."""
    return IdentityUser({"sub": "shopper-1", "email": "ada@example.com"})


@pytest.fixture()
def shopper_client(shopper):
    client = APIClient()
    client.force_authenticate(user=shopper)
    return client


@pytest.fixture()
def staff_user():
    return User.objects.create_user(
        username="staff", password="testpass123", is_staff=True
    )


@pytest.fixture()
def staff_client(staff_user):
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client


# ---------------------------------------------------------------------------
# Catalog / discounts
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_product():
    def _make(**overrides) -> Product:
        defaults = {
            "sku": f"SKU-{next(_sku_counter):05d}",
            "name": "Linen Shirt",
            "price": Decimal("40.00"),
            "stock_quantity": 10,
            "status": ProductStatus.PUBLISHED,
            "size": "M",
            "color": "White",
        }
        defaults.update(overrides)
        return Product.objects.create(**defaults)

    return _make


@pytest.fixture()
def product(make_product):
    return make_product()


@pytest.fixture()
def make_discount():
    def _make(**overrides) -> DiscountCode:
        defaults = {
            "code": "SAVE10",
            "discount_type": DiscountType.PERCENTAGE,
            "value": Decimal("10.00"),
        }
        defaults.update(overrides)
        return DiscountCode.objects.create(**defaults)

    return _make


@pytest.fixture()
def ledger():
    return InventoryLedger(ttl_seconds=900)


# ---------------------------------------------------------------------------
# Checkout payloads
# ---------------------------------------------------------------------------


@pytest.fixture()
def shipping_address():
    return {
        "fullName": "Ada Lovelace",
        "email": "ada@example.com",
        "phone": "+1 555 0100",
        "addressLine1": "12 Analytical Way",
        "city": "London",
        "state": "",
        "postalCode": "N1 9GU",
        "country": "gb",
    }


@pytest.fixture()
def make_command(shipping_address):
    """Build a ``CheckoutCommand`` from ``(product, quantity)`` pairs."""

    def _make(lines, key="checkout-key-0001", user_id="shopper-1", **extra):
        payload = {
            "idempotencyKey": key,
            "userId": user_id,
            "cart": [
                {"productId": str(product.id), "quantity": quantity}
                for product, quantity in lines
            ],
            "shippingAddress": shipping_address,
            **extra,
        }
        return CheckoutCommand.model_validate(payload)

    return _make


@pytest.fixture()
def make_order(make_product):
    """Persist a paid order with one line, as checkout would."""

    def _make(user_id="shopper-1", status=OrderStatus.PAID, product=None, quantity=1):
        product = product or make_product()
        subtotal = product.price * quantity
        order = Order.objects.create(
            user_id=user_id,
            status=status,
            subtotal=subtotal,
            shipping_cost=Decimal("10.00"),
            total=subtotal + Decimal("10.00"),
            shipping_address={"fullName": "Ada Lovelace", "city": "London"},
        )
        OrderItem.objects.create(
            order=order,
            product=product,
            product_name=product.name,
            product_sku=product.sku,
            quantity=quantity,
            unit_price=product.price,
        )
        return order

    return _make
