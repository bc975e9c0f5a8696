"""Inventory ledger: reservations against product stock.

Every mutation of ``Product.stock_quantity`` / ``reserved_quantity`` goes
through this module. Reservations are taken with a single conditional
``UPDATE`` so two checkouts racing for the last unit cannot both win:

    UPDATE products
       SET reserved_quantity = reserved_quantity + :qty
     WHERE id = :id AND status = 'published'
       AND stock_quantity >= reserved_quantity + :qty

Closing a reservation (commit, release, expiry) locks the reservation row
first and only acts on ``ACTIVE`` rows, which makes every close idempotent
and mutually exclusive.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple, Union
from uuid import UUID

import structlog
from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from modules.inventory.exceptions import (
    InsufficientStock,
    ProductUnavailable,
    ReservationNotActive,
    ReservationNotFound,
)
from modules.inventory.models import ReservationStatus, StockReservation
from modules.products.models import Product, ProductStatus

logger = structlog.get_logger(__name__)

Handle = Union[StockReservation, UUID, str]


def _handle_id(handle: Handle):
    return handle.pk if isinstance(handle, StockReservation) else handle


class InventoryLedger:
    """Reserve, commit and release stock for checkout."""

    def __init__(self, ttl_seconds: Optional[int] = None) -> None:
        if ttl_seconds is None:
            ttl_seconds = settings.INVENTORY_RESERVATION_TTL_SECONDS
        self.ttl = timedelta(seconds=ttl_seconds)

    # ------------------------------------------------------------------
    # Reservations
    # ------------------------------------------------------------------

    def reserve(
        self, product_id: UUID, quantity: int, checkout_ref: Optional[str] = None
    ) -> StockReservation:
        """Hold ``quantity`` units of a product.

        Raises:
            ProductUnavailable: product missing or not published.
            InsufficientStock: fewer than ``quantity`` units available.
        """
        if quantity < 1:
            raise ValueError("Reservation quantity must be at least 1.")

        now = timezone.now()
        with transaction.atomic():
            self._expire_for_product(product_id, now)

            updated = Product.objects.filter(
                id=product_id,
                status=ProductStatus.PUBLISHED,
                stock_quantity__gte=F("reserved_quantity") + quantity,
            ).update(
                reserved_quantity=F("reserved_quantity") + quantity,
                updated_at=now,
            )
            if not updated:
                product = Product.objects.filter(id=product_id).first()
                if product is None or not product.is_sellable:
                    raise ProductUnavailable(product_id)
                logger.info(
                    "inventory.insufficient_stock",
                    product_id=str(product_id),
                    requested=quantity,
                    available=product.available_quantity,
                )
                raise InsufficientStock(
                    product_id, quantity, product.available_quantity
                )

            reservation = StockReservation.objects.create(
                product_id=product_id,
                quantity=quantity,
                expires_at=now + self.ttl,
                checkout_ref=checkout_ref or "",
            )

        logger.info(
            "inventory.reserved",
            reservation_id=str(reservation.id),
            product_id=str(product_id),
            quantity=quantity,
        )
        return reservation

    def reserve_lines(
        self,
        lines: Iterable[Tuple[UUID, int]],
        checkout_ref: Optional[str] = None,
    ) -> List[StockReservation]:
        """Reserve every ``(product_id, quantity)`` pair or none of them.

        Lines are processed in product id order so concurrent carts touch
        rows in the same sequence. On failure the reservations already
        taken are released before the error propagates.
        """
        reservations: List[StockReservation] = []
        try:
            for product_id, quantity in sorted(lines, key=lambda l: str(l[0])):
                reservations.append(self.reserve(product_id, quantity, checkout_ref))
        except Exception:
            self.release_all(reservations)
            raise
        return reservations

    def commit(self, handle: Handle) -> StockReservation:
        """Turn a hold into a sale: stock and reserved both drop by the quantity.

        Committing an already committed reservation is a no-op.

        Raises:
            ReservationNotFound: unknown handle.
            ReservationNotActive: the reservation was released or expired.
        """
        with transaction.atomic():
            reservation = self._lock(handle)
            if reservation.status == ReservationStatus.COMMITTED:
                return reservation
            if reservation.status != ReservationStatus.ACTIVE:
                raise ReservationNotActive(
                    f"Reservation {reservation.id} is {reservation.status}."
                )
            now = timezone.now()
            Product.objects.filter(id=reservation.product_id).update(
                stock_quantity=F("stock_quantity") - reservation.quantity,
                reserved_quantity=F("reserved_quantity") - reservation.quantity,
                updated_at=now,
            )
            reservation.status = ReservationStatus.COMMITTED
            reservation.closed_at = now
            reservation.save(update_fields=["status", "closed_at"])

        logger.info(
            "inventory.committed",
            reservation_id=str(reservation.id),
            product_id=str(reservation.product_id),
            quantity=reservation.quantity,
        )
        return reservation

    def commit_all(self, handles: Sequence[Handle]) -> None:
        for handle in handles:
            self.commit(handle)

    def release(self, handle: Handle) -> StockReservation:
        """Drop a hold without touching stock. No-op unless the reservation is active."""
        with transaction.atomic():
            reservation = self._lock(handle)
            changed = self._close(reservation, ReservationStatus.RELEASED)
        if changed:
            logger.info(
                "inventory.released",
                reservation_id=str(reservation.id),
                product_id=str(reservation.product_id),
                quantity=reservation.quantity,
            )
        return reservation

    def release_all(self, handles: Sequence[Handle]) -> None:
        for handle in reversed(list(handles)):
            self.release(handle)

    def expire_stale(self, now: Optional[datetime] = None) -> int:
        """Expire active reservations past ``expires_at``. Returns how many were expired."""
        now = now or timezone.now()
        stale_ids = list(
            StockReservation.objects.filter(
                status=ReservationStatus.ACTIVE, expires_at__lte=now
            )
            .order_by("product_id", "created_at")
            .values_list("id", flat=True)
        )
        expired = 0
        for reservation_id in stale_ids:
            with transaction.atomic():
                reservation = self._lock(reservation_id)
                if self._close(reservation, ReservationStatus.EXPIRED, now):
                    expired += 1
        if expired:
            logger.info("inventory.reservations_expired", count=expired)
        return expired

    def restock(self, product_id: UUID, quantity: int) -> None:
        """Return sold units to stock (order cancelled after payment)."""
        Product.objects.filter(id=product_id).update(
            stock_quantity=F("stock_quantity") + quantity,
            updated_at=timezone.now(),
        )
        logger.info(
            "inventory.restocked", product_id=str(product_id), quantity=quantity
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def available(self, product_id: UUID) -> int:
        row = (
            Product.objects.filter(id=product_id)
            .values("stock_quantity", "reserved_quantity")
            .first()
        )
        if row is None:
            raise ProductUnavailable(product_id)
        return row["stock_quantity"] - row["reserved_quantity"]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _lock(handle: Handle) -> StockReservation:
        reservation = (
            StockReservation.objects.select_for_update()
            .filter(id=_handle_id(handle))
            .first()
        )
        if reservation is None:
            raise ReservationNotFound(f"Reservation {_handle_id(handle)} not found.")
        return reservation

    @staticmethod
    def _close(
        reservation: StockReservation,
        status: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """Move an active reservation to a released/expired state. Caller holds the lock."""
        if reservation.status != ReservationStatus.ACTIVE:
            return False
        now = now or timezone.now()
        Product.objects.filter(id=reservation.product_id).update(
            reserved_quantity=F("reserved_quantity") - reservation.quantity,
            updated_at=now,
        )
        reservation.status = status
        reservation.closed_at = now
        reservation.save(update_fields=["status", "closed_at"])
        return True

    def _expire_for_product(self, product_id: UUID, now: datetime) -> None:
        stale = (
            StockReservation.objects.select_for_update()
            .filter(
                product_id=product_id,
                status=ReservationStatus.ACTIVE,
                expires_at__lte=now,
            )
            .order_by("created_at")
        )
        for reservation in stale:
            self._close(reservation, ReservationStatus.EXPIRED, now)
