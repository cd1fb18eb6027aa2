"""
marketplace.models.payment_event

Idempotency ledger for inbound Stripe webhook events.

- `event_id` (evt_...) is globally unique: a second insert is "already handled".
- `payload` keeps the raw event snapshot for audit/replay.
- Rows stuck in `received` past a staleness window are reported by the
  integrity check.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone


class PaymentEventStatus(models.TextChoices):
    RECEIVED = "received", "Received"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


class ProcessedPaymentEvent(models.Model):
    event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe event id (evt_...).",
    )
    event_type = models.CharField(max_length=100, db_index=True)

    payload = models.JSONField(
        default=dict,
        blank=True,
        help_text="Snapshot of the webhook event payload at time of receipt.",
    )

    status = models.CharField(
        max_length=16,
        choices=PaymentEventStatus.choices,
        default=PaymentEventStatus.RECEIVED,
        db_index=True,
    )
    error = models.TextField(blank=True, default="")
    attempts = models.PositiveIntegerField(default=1)

    received_at = models.DateTimeField(default=timezone.now, db_index=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ("-received_at",)

    def __str__(self) -> str:
        return f"{self.event_type} {self.event_id} ({self.status})"
