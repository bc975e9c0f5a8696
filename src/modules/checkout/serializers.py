"""Checkout DRF serializers (operator views of reconciliation alerts)."""

from __future__ import annotations

from rest_framework import serializers

from modules.checkout.models import ReconciliationAlert


class ReconciliationAlertSerializer(serializers.ModelSerializer):
    attempt_id = serializers.UUIDField(read_only=True)
    idempotency_key = serializers.CharField(
        source="attempt.idempotency_key", read_only=True
    )
    user_id = serializers.CharField(source="attempt.user_id", read_only=True)
    is_resolved = serializers.BooleanField(read_only=True)

    class Meta:
        model = ReconciliationAlert
        fields = [
            "id",
            "attempt_id",
            "idempotency_key",
            "user_id",
            "payment_reference",
            "amount",
            "currency",
            "reason",
            "is_resolved",
            "resolved_at",
            "resolved_by",
            "resolution_notes",
            "created_at",
        ]
        read_only_fields = fields


class ResolveAlertSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, default="", allow_blank=True)
