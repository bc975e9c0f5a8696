"""Order domain exceptions.

Raised by ``OrderService``; the views translate them into HTTP responses.
"""

from __future__ import annotations


class OrderNotFound(Exception):
    """The requested order does not exist or is not visible to the caller."""


class InvalidOrderStatus(Exception):
    """The requested status transition is not allowed."""
