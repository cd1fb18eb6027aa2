"""
marketplace.services.ledger

Order ledger: creation and status transitions.

- create_order() runs the purchase preconditions in a fixed order, each with
  its own error code. The partial unique constraint on (buyer, listing) for
  pending/paid orders is the real guard; the pre-check only gives a nicer
  error in the common case.
- update_order_status() is a compare-and-swap: UPDATE ... WHERE status=<from>.
  Zero rows updated means somebody else moved the order first; that is a
  silent no-op, never an error.

======== CHANGE LOG ========
- ADD: placeholder `pending_<uuid>` intent ids so the unique column is always filled.
- ADD: IntegrityError on insert -> ConflictError(order_in_progress).
- ADD: attach_payment_intent / discard_pending_order for checkout rollback.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from marketplace.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from marketplace.models import (
    ALLOWED_TRANSITIONS,
    IN_FLIGHT_STATUSES,
    PLACEHOLDER_INTENT_PREFIX,
    Listing,
    ListingStatus,
    Order,
    OrderStatus,
)
from marketplace.services.auth import Principal
from marketplace.services.grants import has_grant
from marketplace.services.money import quantize_amount

log = logging.getLogger(__name__)

IMMUTABLE_ORDER_FIELDS = frozenset({"id", "amount", "currency", "buyer", "buyer_id", "listing", "listing_id", "seller", "seller_id"})


def _as_uuid(value: Any) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


def new_placeholder_intent_id() -> str:
    return f"{PLACEHOLDER_INTENT_PREFIX}{uuid.uuid4().hex}"


def create_order(principal: Optional[Principal], listing_id: Any) -> Order:
    if principal is None:
        raise AuthenticationError("not_authenticated", "Authentication required.")
    if not principal.email_verified:
        raise AuthorizationError("email_not_verified", "Please verify your email address before purchasing.")

    listing_pk = _as_uuid(listing_id)
    listing = None
    if listing_pk is not None:
        listing = Listing.objects.filter(pk=listing_pk, status=ListingStatus.PUBLISHED).first()
    if listing is None:
        raise NotFoundError("listing_unavailable", "This listing is not available for purchase.")

    if listing.seller_id == principal.id:
        raise AuthorizationError("self_purchase", "You cannot purchase your own listing.")

    if has_grant(principal.id, listing.pk):
        raise ConflictError("already_purchased", "You have already purchased this listing.")

    if Order.objects.filter(buyer_id=principal.id, listing=listing, status__in=IN_FLIGHT_STATUSES).exists():
        raise ConflictError("order_in_progress", "An order for this listing is already in progress.")

    amount = quantize_amount(listing.price, listing.currency)
    if amount <= 0:
        raise ValidationError("invalid_price", "This listing has an invalid price.")

    try:
        with transaction.atomic():
            order = Order.objects.create(
                listing=listing,
                buyer_id=principal.id,
                seller_id=listing.seller_id,
                amount=amount,
                currency=listing.currency.upper(),
                payment_intent_id=new_placeholder_intent_id(),
                status=OrderStatus.PENDING,
            )
    except IntegrityError:
        log.info("Order insert lost the race buyer=%s listing=%s", principal.id, listing.pk)
        raise ConflictError("order_in_progress", "An order for this listing is already in progress.")

    log.info("Order created id=%s buyer=%s listing=%s amount=%s %s", order.pk, principal.id, listing.pk, amount, order.currency)
    return order


def update_order_status(order_id: Any, from_status: str, to_status: str, **fields: Any) -> Optional[Order]:
    """
    Move an order from `from_status` to `to_status` if, and only if, it is
    still in `from_status`. Returns the refreshed order, or None when the
    row was not in the expected state.
    """
    if to_status not in ALLOWED_TRANSITIONS.get(from_status, frozenset()):
        raise ValueError(f"Illegal order transition {from_status} -> {to_status}.")
    bad = IMMUTABLE_ORDER_FIELDS.intersection(fields)
    if bad:
        raise ValueError(f"Fields cannot be changed by a status update: {sorted(bad)}")

    now = timezone.now()
    values = {"status": to_status, "status_changed_at": now, "updated_at": now}
    values.update(fields)

    updated = Order.objects.filter(pk=order_id, status=from_status).update(**values)
    if not updated:
        log.info("Order %s not in %s; %s transition skipped", order_id, from_status, to_status)
        return None
    return Order.objects.get(pk=order_id)


def attach_payment_intent(order: Order, intent_id: str) -> bool:
    """Swap the placeholder intent id for the processor's id (pending orders only)."""
    with transaction.atomic():
        updated = Order.objects.filter(
            pk=order.pk,
            status=OrderStatus.PENDING,
            payment_intent_id=order.payment_intent_id,
        ).update(payment_intent_id=intent_id, updated_at=timezone.now())
    if updated:
        order.payment_intent_id = intent_id
    return bool(updated)


def discard_pending_order(order: Order) -> bool:
    """Rollback for a checkout whose intent could not be created or attached."""
    deleted, _ = Order.objects.filter(pk=order.pk, status=OrderStatus.PENDING).delete()
    if deleted:
        log.info("Pending order %s discarded", order.pk)
    else:
        log.warning("Pending order %s not discarded (no longer pending)", order.pk)
    return bool(deleted)


def find_order_for_event(order_id: Any) -> Optional[Order]:
    pk = _as_uuid(order_id)
    if pk is None:
        return None
    return Order.objects.select_related("listing").filter(pk=pk).first()


def find_order_by_intent(intent_id: Optional[str]) -> Optional[Order]:
    if not intent_id:
        return None
    return Order.objects.select_related("listing").filter(payment_intent_id=intent_id).first()


def find_order_by_charge(charge_id: Optional[str]) -> Optional[Order]:
    if not charge_id:
        return None
    return Order.objects.select_related("listing").filter(charge_id=charge_id).first()
