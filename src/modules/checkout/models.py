"""Checkout attempt and reconciliation alert models.

``CheckoutAttempt`` is the persisted orchestrator state for one
idempotency key: every transition is saved, and the final response is
stored so a replayed request gets the same answer without side effects.

``ReconciliationAlert`` is written when a charge was captured but the
order could not be persisted; an operator refunds or recreates the order
and marks the alert resolved.
"""

from __future__ import annotations

from django.db import models

from modules.checkout.constants import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    CheckoutState,
)
from modules.core.models import BaseModel


class CheckoutAttempt(BaseModel):
    idempotency_key: models.CharField = models.CharField(max_length=255, unique=True)
    request_hash: models.CharField = models.CharField(max_length=64)
    user_id: models.CharField = models.CharField(max_length=255, null=True, blank=True)
    state: models.CharField = models.CharField(
        max_length=40,
        choices=CheckoutState.choices,
        default=CheckoutState.INITIATED,
    )
    error_kind: models.CharField = models.CharField(
        max_length=64, blank=True, default=""
    )
    error_message: models.TextField = models.TextField(blank=True, default="")
    response_status: models.PositiveSmallIntegerField = models.PositiveSmallIntegerField(
        default=0
    )
    response_body: models.JSONField = models.JSONField(default=dict, blank=True)
    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="checkout_attempts",
    )
    payment_reference: models.CharField = models.CharField(
        max_length=255, blank=True, default=""
    )
    discount_code: models.CharField = models.CharField(
        max_length=50, blank=True, default=""
    )
    subtotal: models.DecimalField = models.DecimalField(
        max_digits=12, decimal_places=2, null=True
    )
    discount_amount: models.DecimalField = models.DecimalField(
        max_digits=12, decimal_places=2, null=True
    )
    shipping_cost: models.DecimalField = models.DecimalField(
        max_digits=12, decimal_places=2, null=True
    )
    total: models.DecimalField = models.DecimalField(
        max_digits=12, decimal_places=2, null=True
    )
    currency: models.CharField = models.CharField(max_length=3, default="USD")

    class Meta:
        db_table = "checkout_attempts"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["state"], name="checkout_attempts_state_idx"),
        ]

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def has_response(self) -> bool:
        return self.response_status > 0

    def can_transition_to(self, new_state: str) -> bool:
        return new_state in VALID_TRANSITIONS.get(self.state, set())

    def __str__(self) -> str:
        return f"{self.idempotency_key} [{self.state}]"


class ReconciliationAlert(BaseModel):
    attempt: models.OneToOneField = models.OneToOneField(
        CheckoutAttempt,
        on_delete=models.PROTECT,
        related_name="reconciliation_alert",
    )
    payment_reference: models.CharField = models.CharField(max_length=255)
    amount: models.DecimalField = models.DecimalField(max_digits=12, decimal_places=2)
    currency: models.CharField = models.CharField(max_length=3)
    reason: models.TextField = models.TextField()
    resolved_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    resolved_by: models.CharField = models.CharField(
        max_length=255, blank=True, default=""
    )
    resolution_notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "reconciliation_alerts"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["resolved_at"], name="recon_alerts_resolved_idx"),
        ]

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None

    def __str__(self) -> str:
        return f"{self.payment_reference} {self.amount} {self.currency}"
