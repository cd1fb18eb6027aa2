"""
marketplace.services.grants

Access grants: "buyer may download this listing's files".

One row per (buyer, listing). Upserted by the reconciler on payment success,
removed on refund. The download gate reads nothing else to decide access.
"""

from __future__ import annotations

import logging
from typing import Optional

from marketplace.models import Order, PurchaseGrant

log = logging.getLogger(__name__)


def has_grant(buyer_id, listing_id, order_id=None) -> bool:
    qs = PurchaseGrant.objects.filter(buyer_id=buyer_id, listing_id=listing_id)
    if order_id is not None:
        qs = qs.filter(order_id=order_id)
    return qs.exists()


def get_grant(buyer_id, listing_id) -> Optional[PurchaseGrant]:
    return PurchaseGrant.objects.filter(buyer_id=buyer_id, listing_id=listing_id).first()


def upsert_grant(order: Order) -> PurchaseGrant:
    grant, created = PurchaseGrant.objects.update_or_create(
        buyer_id=order.buyer_id,
        listing_id=order.listing_id,
        defaults={"order": order},
    )
    log.info(
        "Grant %s buyer=%s listing=%s order=%s",
        "created" if created else "refreshed",
        order.buyer_id,
        order.listing_id,
        order.pk,
    )
    return grant


def revoke_grant(order: Order) -> int:
    """Delete the grant created by this order. Returns the number of rows removed."""
    deleted, _ = PurchaseGrant.objects.filter(
        buyer_id=order.buyer_id,
        listing_id=order.listing_id,
        order_id=order.pk,
    ).delete()
    log.info("Grant revoked=%s buyer=%s listing=%s order=%s", deleted, order.buyer_id, order.listing_id, order.pk)
    return deleted
