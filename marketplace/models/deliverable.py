"""
marketplace.models.deliverable
A downloadable file bound to an order. Only reachable through the download gate.
"""

from __future__ import annotations

import uuid

from django.db import models


class Deliverable(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order = models.ForeignKey(
        "marketplace.Order",
        on_delete=models.CASCADE,
        related_name="deliverables",
    )

    object_path = models.CharField(
        max_length=1024,
        help_text="Storage object key, or a full storage URL (normalized to a key at download time).",
    )
    delivered_at = models.DateTimeField(null=True, blank=True, db_index=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-created_at",)

    def __str__(self) -> str:
        return f"Deliverable({self.pk}) for Order({self.order_id})"
