"""Integration tests for the Celery configuration and periodic tasks."""

from datetime import timedelta

import pytest
from django.utils import timezone

from modules.inventory.models import ReservationStatus, StockReservation
from modules.inventory.tasks import expire_stale_reservations

pytestmark = pytest.mark.integration


class TestCeleryConfig:
    def test_celery_app_is_importable(self):
        from config.celery import app

        assert app.main == "storefront"

    def test_celery_app_exported_from_init(self):
        from config import celery_app

        assert celery_app.main == "storefront"

    def test_celery_serializer_is_json(self, settings):
        assert settings.CELERY_TASK_SERIALIZER == "json"
        assert settings.CELERY_RESULT_SERIALIZER == "json"
        assert settings.CELERY_ACCEPT_CONTENT == ["json"]

    def test_celery_timezone_matches_django(self, settings):
        assert settings.CELERY_TIMEZONE == settings.TIME_ZONE

    def test_expiry_is_scheduled(self, settings):
        schedule = settings.CELERY_BEAT_SCHEDULE["expire-stale-reservations"]
        assert schedule["task"] == "inventory.expire_stale_reservations"


class TestExpireStaleReservationsTask:
    def test_task_releases_abandoned_holds(self, ledger, product):
        reservation = ledger.reserve(product.id, 2)
        StockReservation.objects.filter(id=reservation.id).update(
            expires_at=timezone.now() - timedelta(minutes=1)
        )

        result = expire_stale_reservations.delay()

        assert result.successful()
        assert result.result == {"expired": 1}
        reservation.refresh_from_db()
        product.refresh_from_db()
        assert reservation.status == ReservationStatus.EXPIRED
        assert product.reserved_quantity == 0

    def test_direct_call_with_nothing_to_do(self):
        assert expire_stale_reservations() == {"expired": 0}
