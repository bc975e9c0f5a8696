"""Checkout orchestrator.

Places an order from a cart in a fixed sequence, persisting each state
on the ``CheckoutAttempt``:

1. Build the cart snapshot from catalog prices and pre-check the
   discount code.
2. Reserve every line (product id order). Any shortfall releases what
   was already held.
3. Re-validate the code, price the cart, and charge the gateway for the
   total under the checkout's idempotency key (skipped for a zero total).
   A decline or timeout releases the reservations.
4. In one transaction: commit the reservations, write the order with its
   items, history and outbox event, and redeem the code.

If step 4 fails after money was captured, the reservations are released,
a ``ReconciliationAlert`` and a ``PaymentCapturedUnreconciled`` outbox
event are written, and a CRITICAL log line is emitted. It is never
retried automatically.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Callable, List, Optional, TypeVar

import structlog
from django.conf import settings
from django.db import OperationalError, transaction

from modules.checkout.cart import CartSnapshot, build_cart_snapshot
from modules.checkout.constants import OUTBOX_TOPIC, CheckoutState
from modules.checkout.dtos import CheckoutCommand, CheckoutOutcome, OrderConfirmation
from modules.checkout.exceptions import (
    CheckoutError,
    CheckoutInProgress,
    DiscountCodeInvalid,
    IdempotencyConflict,
    InsufficientStockError,
    InvalidCheckoutTransition,
    PaymentCapturedUnreconciled,
    PaymentFailed,
    PaymentGatewayTimeout,
    PersistenceFailure,
    ProductUnavailableError,
)
from modules.checkout.idempotency import begin_attempt, finalize
from modules.checkout.models import CheckoutAttempt, ReconciliationAlert
from modules.checkout.payments import PaymentGateway, get_payment_gateway
from modules.checkout.pricing import (
    PriceBreakdown,
    ShippingRule,
    calculate,
    shipping_cost,
)
from modules.core.models import OutboxEvent
from modules.discounts.dtos import DiscountApplication, DiscountError
from modules.discounts.services import DiscountService
from modules.discounts.validator import DiscountValidator
from modules.inventory.exceptions import InsufficientStock, ProductUnavailable
from modules.inventory.ledger import InventoryLedger
from modules.inventory.models import StockReservation
from modules.orders.constants import OrderStatus
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO
from modules.orders.models import Order
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CheckoutOrchestrator:
    def __init__(
        self,
        ledger: InventoryLedger,
        validator: DiscountValidator,
        discount_service: DiscountService,
        gateway: PaymentGateway,
        order_repository: IOrderRepository,
        shipping_rule: ShippingRule,
        currency: str = "USD",
    ) -> None:
        self.ledger = ledger
        self.validator = validator
        self.discount_service = discount_service
        self.gateway = gateway
        self.order_repo = order_repository
        self.shipping_rule = shipping_rule
        self.currency = currency

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def submit(self, command: CheckoutCommand) -> CheckoutOutcome:
        """Run a checkout once per idempotency key and return its response."""
        log = logger.bind(idempotency_key=command.idempotency_key)
        try:
            existing, attempt = self._retry_once(
                lambda: begin_attempt(
                    command.idempotency_key,
                    command.request_hash(),
                    command.user_id,
                    self.currency,
                ),
                log,
            )
        except IdempotencyConflict as exc:
            log.warning("checkout.idempotency_conflict")
            return CheckoutOutcome(status_code=exc.http_status, body=exc.to_body())
        except OperationalError:
            log.exception("checkout.attempt_unavailable")
            exc = PersistenceFailure()
            return CheckoutOutcome(status_code=exc.http_status, body=exc.to_body())

        if existing:
            return self._replay(attempt, log)

        try:
            confirmation = self.place_order(attempt, command)
        except CheckoutError as exc:
            finalize(attempt, exc.http_status, exc.to_body())
            return CheckoutOutcome(status_code=exc.http_status, body=exc.to_body())

        body = confirmation.to_body()
        finalize(attempt, 201, body)
        return CheckoutOutcome(status_code=201, body=body)

    def place_order(
        self, attempt: CheckoutAttempt, command: CheckoutCommand
    ) -> OrderConfirmation:
        """Drive one attempt to a terminal state.

        Raises:
            CheckoutError: every failure, already compensated.
        """
        log = logger.bind(
            attempt_id=str(attempt.id), idempotency_key=attempt.idempotency_key
        )
        log.info("checkout.initiated", user_id=command.user_id)
        try:
            return self._run(attempt, command, log)
        except CheckoutError as exc:
            if not attempt.is_terminal and not isinstance(
                exc, PaymentCapturedUnreconciled
            ):
                self._transition(
                    attempt,
                    CheckoutState.ROLLED_BACK,
                    error_kind=exc.kind,
                    error_message=exc.message,
                )
            raise
        except Exception as exc:
            log.exception("checkout.unexpected_error")
            failure = PersistenceFailure()
            if not attempt.is_terminal:
                self._transition(
                    attempt,
                    CheckoutState.ROLLED_BACK,
                    error_kind=failure.kind,
                    error_message=str(exc)[:500],
                )
            raise failure from exc

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _run(
        self, attempt: CheckoutAttempt, command: CheckoutCommand, log
    ) -> OrderConfirmation:
        cart = build_cart_snapshot(command.cart)
        if command.discount_code:
            self._validate_discount(command.discount_code, cart, command.user_id)

        reservations = self._reserve(attempt, cart, log)
        try:
            self._transition(attempt, CheckoutState.INVENTORY_RESERVED)
            application = (
                self._validate_discount(command.discount_code, cart, command.user_id)
                if command.discount_code
                else None
            )
            breakdown = calculate(cart, application, self.shipping_rule)
            if command.client_total is not None and command.client_total != breakdown.total:
                log.warning(
                    "checkout.total_drift",
                    client_total=str(command.client_total),
                    total=str(breakdown.total),
                )
            self._transition(
                attempt,
                CheckoutState.PAYMENT_PENDING,
                subtotal=breakdown.subtotal,
                discount_amount=breakdown.discount_amount,
                shipping_cost=breakdown.shipping_cost,
                total=breakdown.total,
                discount_code=application.code if application else "",
            )
            charged = breakdown.total > 0
            reference = self._charge(attempt, command, breakdown, log) if charged else ""
        except Exception:
            self._release(reservations, log)
            raise

        try:
            self._transition(
                attempt, CheckoutState.PAYMENT_CONFIRMED, payment_reference=reference
            )
            order = self._persist(
                attempt, command, cart, application, breakdown, reservations, reference
            )
        except Exception as exc:
            if not charged:
                self._release(reservations, log)
                raise PersistenceFailure() from exc
            self._reconcile(attempt, reservations, breakdown, reference, exc, log)
            raise PaymentCapturedUnreconciled(attempt.id) from exc

        return OrderConfirmation(
            order_id=order.id,
            order_number=order.order_number,
            status=order.status,
            total=order.total,
        )

    def _validate_discount(
        self, code: str, cart: CartSnapshot, user_id: Optional[str]
    ) -> DiscountApplication:
        result = self.validator.validate(
            code, cart.subtotal, user_id=user_id, lines=cart.lines
        )
        if isinstance(result, DiscountError):
            raise DiscountCodeInvalid(result.reason, result.message)
        return result

    def _reserve(
        self, attempt: CheckoutAttempt, cart: CartSnapshot, log
    ) -> List[StockReservation]:
        lines = [(line.product_id, line.quantity) for line in cart.lines]
        try:
            return self._retry_once(
                lambda: self.ledger.reserve_lines(lines, checkout_ref=str(attempt.id)),
                log,
            )
        except InsufficientStock as exc:
            raise InsufficientStockError(
                exc.product_id, exc.requested, exc.available
            ) from exc
        except ProductUnavailable as exc:
            raise ProductUnavailableError(exc.product_id) from exc

    def _charge(
        self,
        attempt: CheckoutAttempt,
        command: CheckoutCommand,
        breakdown: PriceBreakdown,
        log,
    ) -> str:
        metadata = {
            "attempt_id": str(attempt.id),
            "user_id": command.user_id,
            "email": command.shipping_address.email,
        }
        try:
            result = self.gateway.create_charge(
                breakdown.total,
                self.currency,
                metadata,
                idempotency_key=attempt.idempotency_key,
            )
        except PaymentGatewayTimeout:
            raise
        except Exception as exc:
            log.exception("checkout.gateway_error")
            raise PaymentGatewayTimeout() from exc

        if not result.success:
            log.info("checkout.payment_declined", reason=result.reason)
            raise PaymentFailed(result.reason)
        return result.reference or ""

    def _persist(
        self,
        attempt: CheckoutAttempt,
        command: CheckoutCommand,
        cart: CartSnapshot,
        application: Optional[DiscountApplication],
        breakdown: PriceBreakdown,
        reservations: List[StockReservation],
        reference: str,
    ) -> Order:
        dto = CreateOrderDTO(
            user_id=command.user_id,
            status=OrderStatus.PAID,
            items=[
                CreateOrderItemDTO(
                    product_id=line.product_id,
                    product_name=line.name,
                    product_sku=line.sku,
                    size=line.size,
                    color=line.color,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                )
                for line in cart.lines
            ],
            subtotal=breakdown.subtotal,
            discount_amount=breakdown.discount_amount,
            shipping_cost=breakdown.shipping_cost,
            total=breakdown.total,
            currency=self.currency,
            shipping_address=command.shipping_address.model_dump(),
            payment_reference=reference,
            discount_code=application.code if application else None,
            idempotency_key=attempt.idempotency_key,
        )
        with transaction.atomic():
            self.ledger.commit_all(reservations)
            order = self.order_repo.create(dto)
            if application is not None:
                self.discount_service.record_redemption(
                    application.code_id,
                    order,
                    command.user_id,
                    self._redeemed_amount(application, breakdown),
                )
            self._transition(attempt, CheckoutState.ORDER_PERSISTED, order=order)
        return order

    def _redeemed_amount(
        self, application: DiscountApplication, breakdown: PriceBreakdown
    ) -> Decimal:
        if breakdown.shipping_waived:
            return shipping_cost(breakdown.subtotal, self.shipping_rule)
        return breakdown.discount_amount

    # ------------------------------------------------------------------
    # Compensation
    # ------------------------------------------------------------------

    def _release(self, reservations: List[StockReservation], log) -> None:
        """Release holds; a failure here is left to the TTL sweeper."""
        try:
            self.ledger.release_all(reservations)
        except Exception:
            log.exception(
                "checkout.release_failed",
                reservation_ids=[str(r.id) for r in reservations],
            )

    def _reconcile(
        self,
        attempt: CheckoutAttempt,
        reservations: List[StockReservation],
        breakdown: PriceBreakdown,
        reference: str,
        exc: Exception,
        log,
    ) -> None:
        self._release(reservations, log)
        reason = f"{type(exc).__name__}: {exc}"[:1000]
        log.critical(
            "checkout.payment_captured_unreconciled",
            payment_reference=reference,
            amount=str(breakdown.total),
            currency=self.currency,
            reason=reason,
        )
        try:
            attempt.refresh_from_db(fields=["state"])
            with transaction.atomic():
                alert = ReconciliationAlert.objects.create(
                    attempt=attempt,
                    payment_reference=reference,
                    amount=breakdown.total,
                    currency=self.currency,
                    reason=reason,
                )
                OutboxEvent.record(
                    "PaymentCapturedUnreconciled",
                    attempt.id,
                    {
                        "attempt_id": str(attempt.id),
                        "alert_id": str(alert.id),
                        "payment_reference": reference,
                        "amount": str(breakdown.total),
                        "currency": self.currency,
                        "user_id": attempt.user_id,
                    },
                    OUTBOX_TOPIC,
                )
                self._transition(
                    attempt,
                    CheckoutState.PAYMENT_CAPTURED_UNRECONCILED,
                    error_kind=PaymentCapturedUnreconciled.kind,
                    error_message=reason,
                )
        except Exception:
            log.exception(
                "checkout.reconciliation_alert_failed", payment_reference=reference
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _replay(self, attempt: CheckoutAttempt, log) -> CheckoutOutcome:
        if attempt.has_response:
            log.info("checkout.replayed", state=attempt.state)
            return CheckoutOutcome(
                status_code=attempt.response_status,
                body=attempt.response_body,
                replayed=True,
            )
        if attempt.state == CheckoutState.ORDER_PERSISTED and attempt.order_id:
            order = attempt.order
            body = OrderConfirmation(
                order_id=order.id,
                order_number=order.order_number,
                status=order.status,
                total=order.total,
            ).to_body()
            return CheckoutOutcome(status_code=201, body=body, replayed=True)

        exc = CheckoutInProgress()
        log.info("checkout.in_progress", state=attempt.state)
        return CheckoutOutcome(status_code=exc.http_status, body=exc.to_body())

    @staticmethod
    def _transition(attempt: CheckoutAttempt, new_state: str, **fields: Any) -> None:
        if not attempt.can_transition_to(new_state):
            raise InvalidCheckoutTransition(f"{attempt.state} -> {new_state}")

        previous = {"state": attempt.state}
        previous.update({name: getattr(attempt, name) for name in fields})
        attempt.state = new_state
        for name, value in fields.items():
            setattr(attempt, name, value)
        try:
            attempt.save(update_fields=list(previous))
        except Exception:
            for name, value in previous.items():
                setattr(attempt, name, value)
            raise
        logger.info(
            f"checkout.{str(new_state).lower()}",
            attempt_id=str(attempt.id),
            from_state=str(previous["state"]),
        )

    @staticmethod
    def _retry_once(operation: Callable[[], T], log) -> T:
        """Retry once on a transient database error."""
        try:
            return operation()
        except OperationalError:
            log.warning("checkout.transient_db_error_retrying")
            return operation()


def get_checkout_orchestrator() -> CheckoutOrchestrator:
    from modules.orders.repositories.django_repository import OrderDjangoRepository

    return CheckoutOrchestrator(
        ledger=InventoryLedger(),
        validator=DiscountValidator(),
        discount_service=DiscountService(),
        gateway=get_payment_gateway(),
        order_repository=OrderDjangoRepository(),
        shipping_rule=ShippingRule.from_settings(),
        currency=settings.CHECKOUT_CURRENCY,
    )
