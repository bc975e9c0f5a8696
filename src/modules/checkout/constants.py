"""Checkout orchestration states.

    INITIATED -> INVENTORY_RESERVED -> PAYMENT_PENDING
              -> PAYMENT_CONFIRMED -> ORDER_PERSISTED

``ROLLED_BACK`` is reachable from every non-terminal state before
payment is confirmed. ``PAYMENT_CAPTURED_UNRECONCILED`` is reachable only
from ``PAYMENT_CONFIRMED``: money was taken but no order exists.
"""

from django.db import models


class CheckoutState(models.TextChoices):
    INITIATED = "INITIATED", "Initiated"
    INVENTORY_RESERVED = "INVENTORY_RESERVED", "Inventory reserved"
    PAYMENT_PENDING = "PAYMENT_PENDING", "Payment pending"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED", "Payment confirmed"
    ORDER_PERSISTED = "ORDER_PERSISTED", "Order persisted"
    ROLLED_BACK = "ROLLED_BACK", "Rolled back"
    PAYMENT_CAPTURED_UNRECONCILED = (
        "PAYMENT_CAPTURED_UNRECONCILED",
        "Payment captured, order missing",
    )


VALID_TRANSITIONS: dict[str, set[str]] = {
    CheckoutState.INITIATED: {
        CheckoutState.INVENTORY_RESERVED,
        CheckoutState.ROLLED_BACK,
    },
    CheckoutState.INVENTORY_RESERVED: {
        CheckoutState.PAYMENT_PENDING,
        CheckoutState.ROLLED_BACK,
    },
    CheckoutState.PAYMENT_PENDING: {
        CheckoutState.PAYMENT_CONFIRMED,
        CheckoutState.ROLLED_BACK,
    },
    CheckoutState.PAYMENT_CONFIRMED: {
        CheckoutState.ORDER_PERSISTED,
        CheckoutState.PAYMENT_CAPTURED_UNRECONCILED,
        CheckoutState.ROLLED_BACK,
    },
    CheckoutState.ORDER_PERSISTED: set(),
    CheckoutState.ROLLED_BACK: set(),
    CheckoutState.PAYMENT_CAPTURED_UNRECONCILED: set(),
}

TERMINAL_STATES: set[str] = {
    CheckoutState.ORDER_PERSISTED,
    CheckoutState.ROLLED_BACK,
    CheckoutState.PAYMENT_CAPTURED_UNRECONCILED,
}

OUTBOX_TOPIC = "checkout"
