"""
marketplace.models.order

A purchase attempt for one listing by one buyer.

Invariants held by the schema itself (not by application pre-checks):
- `payment_intent_id` is unique. Before Stripe answers it holds a local
  `pending_<uuid>` placeholder; afterwards the real `pi_...` id.
- At most one order in {pending, paid} per (buyer, listing): partial unique
  constraint `uniq_inflight_order_per_buyer_listing`.

`amount` is the authoritative charge, captured from the listing at creation.
It is never rewritten.

Status graph:
    pending -> paid | failed
    paid    -> refunded
failed and refunded are terminal. Status changes go through
`marketplace.services.ledger.update_order_status` (compare-and-swap).
"""

from __future__ import annotations

import uuid

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"


IN_FLIGHT_STATUSES = (OrderStatus.PENDING, OrderStatus.PAID)

ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.FAILED}),
    OrderStatus.PAID: frozenset({OrderStatus.REFUNDED}),
}

PLACEHOLDER_INTENT_PREFIX = "pending_"


class Order(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    listing = models.ForeignKey(
        "marketplace.Listing",
        on_delete=models.PROTECT,
        related_name="orders",
    )
    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
    )
    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="sales",
        help_text="Denormalized from the listing at creation time.",
    )

    # ---- money ----
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        help_text="Listing price at creation, rounded to the currency's minor unit. Immutable.",
    )
    currency = models.CharField(max_length=3)

    # ---- Stripe identifiers ----
    payment_intent_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe PaymentIntent id (pi_...); a pending_<uuid> placeholder until Stripe answers.",
    )
    charge_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Stripe Charge id (ch_...) recorded on payment success.",
    )

    # ---- status ----
    status = models.CharField(
        max_length=16,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
        db_index=True,
    )
    failure_reason = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    status_changed_at = models.DateTimeField(default=timezone.now)
    paid_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-created_at",)
        constraints = [
            models.UniqueConstraint(
                fields=["buyer", "listing"],
                condition=Q(status__in=["pending", "paid"]),
                name="uniq_inflight_order_per_buyer_listing",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "created_at"], name="order_status_created_idx"),
        ]

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_amount = instance.__dict__.get("amount")
        return instance

    def save(self, *args, **kwargs):
        loaded = getattr(self, "_loaded_amount", None)
        if loaded is not None and self.amount != loaded:
            raise ValueError(f"Order {self.pk} amount is immutable ({loaded} -> {self.amount}).")
        super().save(*args, **kwargs)
        self._loaded_amount = self.amount

    def __str__(self) -> str:
        return f"Order({self.pk})<{self.status}>"

    @property
    def has_placeholder_intent(self) -> bool:
        return (self.payment_intent_id or "").startswith(PLACEHOLDER_INTENT_PREFIX)
