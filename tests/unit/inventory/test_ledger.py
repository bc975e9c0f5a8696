"""Unit tests for InventoryLedger.

Covers:
- reserve holds stock without decrementing it.
- insufficient stock and unpublished products.
- commit / release are idempotent and mutually exclusive.
- expiry of stale reservations (sweeper and lazy on reserve).
- all-or-nothing ``reserve_lines``.
- restock after cancellation.
"""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest
from django.utils import timezone

from modules.inventory.exceptions import (
    InsufficientStock,
    ProductUnavailable,
    ReservationNotActive,
    ReservationNotFound,
)
from modules.inventory.models import ReservationStatus, StockReservation
from modules.inventory.tasks import expire_stale_reservations
from modules.products.models import ProductStatus

pytestmark = pytest.mark.unit


def _stock(product):
    product.refresh_from_db()
    return product.stock_quantity, product.reserved_quantity


# ---------------------------------------------------------------------------
# reserve
# ---------------------------------------------------------------------------


class TestReserve:
    def test_reserve_holds_units(self, ledger, product):
        reservation = ledger.reserve(product.id, 3, checkout_ref="attempt-1")

        assert reservation.status == ReservationStatus.ACTIVE
        assert reservation.quantity == 3
        assert reservation.checkout_ref == "attempt-1"
        assert reservation.expires_at > timezone.now()
        assert _stock(product) == (10, 3)
        assert ledger.available(product.id) == 7

    def test_reserve_exact_remaining_stock(self, ledger, make_product):
        product = make_product(stock_quantity=2)
        ledger.reserve(product.id, 2)
        assert ledger.available(product.id) == 0

    def test_insufficient_stock_reports_available(self, ledger, make_product):
        product = make_product(stock_quantity=5)
        ledger.reserve(product.id, 4)

        with pytest.raises(InsufficientStock) as exc_info:
            ledger.reserve(product.id, 2)

        assert exc_info.value.product_id == product.id
        assert exc_info.value.requested == 2
        assert exc_info.value.available == 1
        assert _stock(product) == (5, 4)

    def test_last_unit_only_reserved_once(self, ledger, make_product):
        product = make_product(stock_quantity=1)
        ledger.reserve(product.id, 1)

        with pytest.raises(InsufficientStock):
            ledger.reserve(product.id, 1)

        assert StockReservation.objects.filter(product=product).count() == 1

    def test_draft_product_is_unavailable(self, ledger, make_product):
        product = make_product(status=ProductStatus.DRAFT)
        with pytest.raises(ProductUnavailable):
            ledger.reserve(product.id, 1)

    def test_missing_product_is_unavailable(self, ledger):
        with pytest.raises(ProductUnavailable):
            ledger.reserve(uuid.uuid4(), 1)

    def test_zero_quantity_rejected(self, ledger, product):
        with pytest.raises(ValueError):
            ledger.reserve(product.id, 0)


# ---------------------------------------------------------------------------
# commit / release
# ---------------------------------------------------------------------------


class TestCommitRelease:
    def test_commit_decrements_stock_and_hold(self, ledger, product):
        reservation = ledger.reserve(product.id, 2)

        committed = ledger.commit(reservation)

        assert committed.status == ReservationStatus.COMMITTED
        assert committed.closed_at is not None
        assert _stock(product) == (8, 0)

    def test_commit_twice_is_noop(self, ledger, product):
        reservation = ledger.reserve(product.id, 2)
        ledger.commit(reservation.id)
        ledger.commit(str(reservation.id))
        assert _stock(product) == (8, 0)

    def test_release_drops_hold_without_touching_stock(self, ledger, product):
        reservation = ledger.reserve(product.id, 4)

        released = ledger.release(reservation)

        assert released.status == ReservationStatus.RELEASED
        assert _stock(product) == (10, 0)

    def test_release_twice_is_noop(self, ledger, product):
        reservation = ledger.reserve(product.id, 4)
        ledger.release(reservation)
        ledger.release(reservation)
        assert _stock(product) == (10, 0)

    def test_commit_after_release_is_rejected(self, ledger, product):
        reservation = ledger.reserve(product.id, 1)
        ledger.release(reservation)

        with pytest.raises(ReservationNotActive):
            ledger.commit(reservation)
        assert _stock(product) == (10, 0)

    def test_release_after_commit_is_noop(self, ledger, product):
        reservation = ledger.reserve(product.id, 1)
        ledger.commit(reservation)

        released = ledger.release(reservation)

        assert released.status == ReservationStatus.COMMITTED
        assert _stock(product) == (9, 0)

    def test_unknown_handle(self, ledger):
        with pytest.raises(ReservationNotFound):
            ledger.release(uuid.uuid4())


# ---------------------------------------------------------------------------
# reserve_lines
# ---------------------------------------------------------------------------


class TestReserveLines:
    def test_all_lines_reserved(self, ledger, make_product):
        a = make_product(stock_quantity=3)
        b = make_product(stock_quantity=3)

        reservations = ledger.reserve_lines([(a.id, 1), (b.id, 2)], "attempt-1")

        assert len(reservations) == 2
        assert ledger.available(a.id) == 2
        assert ledger.available(b.id) == 1

    def test_failure_releases_lines_already_held(self, ledger, make_product):
        plenty = make_product(stock_quantity=10)
        scarce = make_product(stock_quantity=1)

        with pytest.raises(InsufficientStock):
            ledger.reserve_lines([(plenty.id, 2), (scarce.id, 5)])

        assert ledger.available(plenty.id) == 10
        assert ledger.available(scarce.id) == 1
        assert not StockReservation.objects.filter(
            status=ReservationStatus.ACTIVE
        ).exists()


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------


class TestExpiry:
    def test_expire_stale_releases_past_due_holds(self, ledger, product):
        stale = ledger.reserve(product.id, 3)
        fresh = ledger.reserve(product.id, 2)
        StockReservation.objects.filter(id=stale.id).update(
            expires_at=timezone.now() - timedelta(seconds=1)
        )

        expired = ledger.expire_stale()

        stale.refresh_from_db()
        fresh.refresh_from_db()
        assert expired == 1
        assert stale.status == ReservationStatus.EXPIRED
        assert fresh.status == ReservationStatus.ACTIVE
        assert _stock(product) == (10, 2)

    def test_expire_stale_with_future_clock(self, ledger, product):
        ledger.reserve(product.id, 3)
        assert ledger.expire_stale(now=timezone.now() + timedelta(hours=1)) == 1
        assert ledger.available(product.id) == 10

    def test_expired_reservation_cannot_be_committed(self, ledger, product):
        reservation = ledger.reserve(product.id, 1)
        ledger.expire_stale(now=timezone.now() + timedelta(hours=1))

        with pytest.raises(ReservationNotActive):
            ledger.commit(reservation)

    def test_reserve_reclaims_expired_holds(self, ledger, make_product):
        product = make_product(stock_quantity=1)
        abandoned = ledger.reserve(product.id, 1)
        StockReservation.objects.filter(id=abandoned.id).update(
            expires_at=timezone.now() - timedelta(seconds=1)
        )

        ledger.reserve(product.id, 1)

        abandoned.refresh_from_db()
        assert abandoned.status == ReservationStatus.EXPIRED
        assert _stock(product) == (1, 1)

    def test_expire_task_reports_count(self, ledger, product):
        reservation = ledger.reserve(product.id, 1)
        StockReservation.objects.filter(id=reservation.id).update(
            expires_at=timezone.now() - timedelta(minutes=5)
        )

        result = expire_stale_reservations.delay()

        assert result.successful()
        assert result.result == {"expired": 1}


# ---------------------------------------------------------------------------
# restock / available
# ---------------------------------------------------------------------------


class TestRestock:
    def test_restock_adds_units(self, ledger, product):
        ledger.restock(product.id, 4)
        assert _stock(product) == (14, 0)

    def test_available_for_missing_product(self, ledger):
        with pytest.raises(ProductUnavailable):
            ledger.available(uuid.uuid4())

    def test_ttl_comes_from_settings(self, settings):
        from modules.inventory.ledger import InventoryLedger

        settings.INVENTORY_RESERVATION_TTL_SECONDS = 60
        assert InventoryLedger().ttl == timedelta(seconds=60)
