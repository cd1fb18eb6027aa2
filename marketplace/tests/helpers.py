"""
Shared fixtures for marketplace tests: users, listings, orders, signed Stripe
webhook payloads and a fake blob store.
"""

from __future__ import annotations

import hashlib
import hmac
import itertools
import json
import time
from decimal import Decimal
from typing import Any, Dict, Optional

from django.contrib.auth import get_user_model
from django.utils import timezone

from marketplace.models import (
    Deliverable,
    Listing,
    ListingStatus,
    Order,
    OrderStatus,
    Profile,
    ProfileRole,
    PurchaseGrant,
)
from marketplace.services.storage import BlobStore, BlobStoreError

WEBHOOK_SECRET = "whsec_seedbay_test"
CRON_SECRET = "cron-test-secret"

_seq = itertools.count(1)


def make_user(username: Optional[str] = None, *, verified: bool = True, role: str = ProfileRole.BUYER):
    n = next(_seq)
    username = username or f"user{n}"
    user = get_user_model().objects.create_user(
        username=username,
        email=f"{username}@seedbay.test",
        password="correct-horse-battery",
    )
    Profile.objects.create(
        user=user,
        role=role,
        email_verified_at=timezone.now() if verified else None,
    )
    return user


def make_listing(seller=None, *, price="49.00", currency="USD", status=ListingStatus.PUBLISHED, title=None) -> Listing:
    seller = seller or make_user(role=ProfileRole.VENDOR)
    return Listing.objects.create(
        seller=seller,
        title=title or f"Starter kit {next(_seq)}",
        price=Decimal(price),
        currency=currency,
        status=status,
    )


def make_order(
    buyer,
    listing: Listing,
    *,
    status: str = OrderStatus.PENDING,
    payment_intent_id: Optional[str] = None,
    charge_id: str = "",
    amount: Optional[str] = None,
) -> Order:
    return Order.objects.create(
        listing=listing,
        buyer=buyer,
        seller=listing.seller,
        amount=Decimal(amount) if amount is not None else listing.price,
        currency=listing.currency,
        payment_intent_id=payment_intent_id or f"pi_test_{next(_seq)}",
        charge_id=charge_id,
        status=status,
    )


def make_paid_order(buyer, listing: Listing, **kwargs) -> Order:
    kwargs.setdefault("charge_id", f"ch_test_{next(_seq)}")
    order = make_order(buyer, listing, status=OrderStatus.PAID, **kwargs)
    PurchaseGrant.objects.create(buyer=buyer, listing=listing, order=order)
    return order


def make_deliverable(order: Order, object_path: str = "kits/starter.zip", delivered: bool = True) -> Deliverable:
    return Deliverable.objects.create(
        order=order,
        object_path=object_path,
        delivered_at=timezone.now() if delivered else None,
    )


# ------------------------------
# Stripe webhook payloads
# ------------------------------
def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.{payload}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def stripe_event(event_id: str, event_type: str, obj: Dict[str, Any]) -> str:
    return json.dumps(
        {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "created": int(time.time()),
            "livemode": False,
            "data": {"object": obj},
        }
    )


def intent_object(order: Order, *, amount: Optional[int] = None, currency: Optional[str] = None, **extra) -> Dict[str, Any]:
    from marketplace.services.money import to_minor_units

    minor = to_minor_units(order.amount, order.currency) if amount is None else amount
    obj = {
        "id": order.payment_intent_id,
        "object": "payment_intent",
        "amount": minor,
        "amount_received": minor,
        "currency": (currency or order.currency).lower(),
        "latest_charge": "ch_test_latest",
        "metadata": {
            "order_id": str(order.pk),
            "listing_id": str(order.listing_id),
            "buyer_id": str(order.buyer_id),
        },
    }
    obj.update(extra)
    return obj


def charge_object(order: Order, *, refunded: bool = True, amount_refunded: Optional[int] = None) -> Dict[str, Any]:
    from marketplace.services.money import to_minor_units

    minor = to_minor_units(order.amount, order.currency)
    return {
        "id": order.charge_id or "ch_test_latest",
        "object": "charge",
        "payment_intent": order.payment_intent_id,
        "amount": minor,
        "amount_refunded": minor if amount_refunded is None else amount_refunded,
        "refunded": refunded,
        "currency": order.currency.lower(),
    }


# ------------------------------
# Blob stores
# ------------------------------
class FakeBlobStore(BlobStore):
    calls = []

    def issue_temporary_download_url(self, object_path: str, ttl: int) -> str:
        FakeBlobStore.calls.append((object_path, ttl))
        return f"https://signed.seedbay.test/{object_path}?ttl={ttl}"


class FailingBlobStore(BlobStore):
    def issue_temporary_download_url(self, object_path: str, ttl: int) -> str:
        raise BlobStoreError("storage offline")
