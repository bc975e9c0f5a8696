"""Unit tests for the base model and the transactional outbox."""

from __future__ import annotations

import uuid

import pytest

from modules.core.models import EventStatus, OutboxEvent

pytestmark = pytest.mark.unit


class TestOutboxEventRecord:
    def test_record_persists_pending_event(self):
        aggregate = uuid.uuid4()

        event = OutboxEvent.record(
            "OrderPlaced", aggregate, {"order_id": str(aggregate)}, "orders"
        )
        event.refresh_from_db()

        assert event.event_type == "OrderPlaced"
        assert event.aggregate_id == str(aggregate)
        assert event.topic == "orders"
        assert event.status == EventStatus.PENDING
        assert event.payload == {"order_id": str(aggregate)}

    def test_primary_key_is_uuid7(self):
        event = OutboxEvent.record("OrderPlaced", "agg-1", {}, "orders")
        assert event.id.version == 7

    def test_events_ordered_by_creation(self):
        first = OutboxEvent.record("OrderPlaced", "a", {}, "orders")
        second = OutboxEvent.record("OrderPlaced", "b", {}, "orders")
        assert list(OutboxEvent.objects.values_list("id", flat=True)) == [
            first.id,
            second.id,
        ]

    def test_str_contains_type_and_status(self):
        event = OutboxEvent.record("PaymentCapturedUnreconciled", "a", {}, "checkout")
        assert "PaymentCapturedUnreconciled" in str(event)
        assert "PENDING" in str(event)
