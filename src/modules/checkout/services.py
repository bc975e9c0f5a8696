"""Reconciliation alert handling for operators."""

from __future__ import annotations

import structlog
from django.db import transaction
from django.utils import timezone

from modules.checkout.models import ReconciliationAlert

logger = structlog.get_logger(__name__)


class AlertNotFound(Exception):
    """The requested reconciliation alert does not exist."""


class AlertAlreadyResolved(Exception):
    """The alert was already closed by an operator."""


class ReconciliationService:
    @transaction.atomic
    def resolve(self, alert_id: str, resolved_by: str, notes: str = "") -> ReconciliationAlert:
        """Close an alert once the charge was refunded or the order recreated.

        Raises:
            AlertNotFound: alert does not exist.
            AlertAlreadyResolved: alert is already closed.
        """
        alert = ReconciliationAlert.objects.select_for_update().filter(id=alert_id).first()
        if alert is None:
            raise AlertNotFound(f"Alert {alert_id} not found.")
        if alert.is_resolved:
            raise AlertAlreadyResolved(f"Alert {alert_id} is already resolved.")

        alert.resolved_at = timezone.now()
        alert.resolved_by = resolved_by
        alert.resolution_notes = notes
        alert.save(update_fields=["resolved_at", "resolved_by", "resolution_notes"])
        logger.info(
            "checkout.alert_resolved",
            alert_id=str(alert.id),
            payment_reference=alert.payment_reference,
            resolved_by=resolved_by,
        )
        return alert
