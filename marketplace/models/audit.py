"""
marketplace.models.audit

Append-only records:
- DownloadAudit: one row per issued download URL.
- AuditLogEntry: business events (order created, payment applied, anomalies, integrity runs).

Neither is read back by the order/payment flow.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone


class DownloadAudit(models.Model):
    order = models.ForeignKey(
        "marketplace.Order",
        on_delete=models.CASCADE,
        related_name="download_audits",
    )
    deliverable = models.ForeignKey(
        "marketplace.Deliverable",
        on_delete=models.CASCADE,
        related_name="download_audits",
    )
    requester = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="download_audits",
    )
    ip_address = models.CharField(max_length=64, blank=True, default="")
    user_agent = models.CharField(max_length=512, blank=True, default="")

    created_at = models.DateTimeField(default=timezone.now, editable=False, db_index=True)

    class Meta:
        ordering = ("-created_at",)

    def __str__(self) -> str:
        return f"Download({self.deliverable_id}) by {self.requester_id}"


class AuditLogEntry(models.Model):
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_entries",
        help_text="NULL for system actors (webhooks, cron).",
    )
    action = models.CharField(max_length=64, db_index=True)
    resource_type = models.CharField(max_length=64)
    resource_id = models.CharField(max_length=64, blank=True, default="")

    old_values = models.JSONField(null=True, blank=True)
    new_values = models.JSONField(null=True, blank=True)

    ip_address = models.CharField(max_length=64, blank=True, default="")
    user_agent = models.CharField(max_length=512, blank=True, default="")

    created_at = models.DateTimeField(default=timezone.now, editable=False, db_index=True)

    class Meta:
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=["resource_type", "resource_id"], name="audit_resource_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.action} {self.resource_type}:{self.resource_id}"
