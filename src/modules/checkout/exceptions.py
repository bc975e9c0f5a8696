"""Checkout errors.

Each error carries the ``kind`` reported to clients, a message safe to
show to shoppers, and the HTTP status the checkout endpoint answers with.
Anything else raised inside the orchestrator is wrapped into one of these
before it leaves.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

from modules.core.exceptions import error_body


class CheckoutError(Exception):
    kind = "CheckoutError"
    http_status = 400
    default_message = "Your order could not be placed."

    def __init__(self, message: Optional[str] = None, **extra: Any) -> None:
        self.message = message or self.default_message
        self.extra: Dict[str, Any] = extra
        super().__init__(self.message)

    def to_body(self) -> Dict[str, Any]:
        return error_body(self.kind, self.message, **self.extra)


class InsufficientStockError(CheckoutError):
    kind = "InsufficientStock"
    http_status = 409
    default_message = "Some items in your cart are no longer available in that quantity."

    def __init__(self, product_id: UUID, requested: int, available: int) -> None:
        super().__init__(
            productId=str(product_id), requested=requested, available=available
        )


class ProductUnavailableError(CheckoutError):
    kind = "ProductUnavailable"
    http_status = 422
    default_message = "A product in your cart is no longer for sale."

    def __init__(self, product_id: UUID) -> None:
        super().__init__(productId=str(product_id))


class DiscountCodeInvalid(CheckoutError):
    kind = "DiscountCodeInvalid"
    http_status = 422
    default_message = "This discount code cannot be applied."

    def __init__(self, reason: str, message: Optional[str] = None) -> None:
        self.reason = reason
        super().__init__(message, reason=reason)


class PaymentFailed(CheckoutError):
    kind = "PaymentFailed"
    http_status = 402
    default_message = "Your payment was declined. Please try another payment method."

    def __init__(self, reason: str = "") -> None:
        self.reason = reason
        extra = {"reason": reason} if reason else {}
        super().__init__(**extra)


class PaymentGatewayTimeout(CheckoutError):
    kind = "PaymentGatewayTimeout"
    http_status = 504
    default_message = "The payment provider did not respond in time. Please try again."


class PersistenceFailure(CheckoutError):
    kind = "PersistenceFailure"
    http_status = 503
    default_message = "We could not place your order right now. Please try again."


class PaymentCapturedUnreconciled(CheckoutError):
    kind = "PaymentCapturedUnreconciled"
    http_status = 202
    default_message = (
        "Your payment was received but your order needs manual confirmation. "
        "Our team has been notified and will contact you."
    )

    def __init__(self, attempt_id: UUID) -> None:
        super().__init__(attemptId=str(attempt_id))


class IdempotencyConflict(CheckoutError):
    kind = "IdempotencyConflict"
    http_status = 409
    default_message = "This checkout key was already used for a different order."


class CheckoutInProgress(CheckoutError):
    kind = "CheckoutInProgress"
    http_status = 409
    default_message = "This order is still being processed."


class InvalidCheckoutTransition(RuntimeError):
    """An orchestrator state change outside the transition table."""
