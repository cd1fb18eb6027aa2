"""
marketplace.models.purchase

PurchaseGrant: "this buyer may download this listing's files".

The grant row is the only authority for download access. A `paid` order
without a grant is treated as "access not yet confirmed".

Written by the webhook reconciler on payment success (upsert on
(buyer, listing) so replays never duplicate), deleted on refund.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models


class PurchaseGrant(models.Model):
    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="purchase_grants",
    )
    listing = models.ForeignKey(
        "marketplace.Listing",
        on_delete=models.CASCADE,
        related_name="purchase_grants",
    )
    order = models.ForeignKey(
        "marketplace.Order",
        on_delete=models.PROTECT,
        related_name="purchase_grants",
        help_text="Order whose payment created this grant.",
    )

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ("-created_at",)
        constraints = [
            models.UniqueConstraint(
                fields=["buyer", "listing"],
                name="uniq_grant_per_buyer_listing",
            ),
        ]

    def __str__(self) -> str:
        return f"PurchaseGrant(buyer={self.buyer_id}, listing={self.listing_id})"
