"""
marketplace.services.payments

Payment intent bridge (Stripe).

One PaymentIntent per order, created with idempotency key `order-<order id>`
so a retried create can never produce a second intent for the same order.
Intent metadata carries order_id / listing_id / buyer_id as strings; the
webhook reconciler reads them back unchanged.

ENV
- STRIPE_SECRET_KEY (required)
- SEEDBAY_PAYMENT_DESCRIPTION_PREFIX (optional, default "SeedBay")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict

import stripe
from django.core.exceptions import ImproperlyConfigured

from marketplace.conf import get_payment_config
from marketplace.errors import ConfigurationError, ExternalServiceError
from marketplace.models import PLACEHOLDER_INTENT_PREFIX, Listing, Order
from marketplace.services.money import to_minor_units

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExternalIntent:
    id: str
    client_secret: str
    status: str = ""


def _field(obj: Any, name: str, default: Any = None) -> Any:
    value = getattr(obj, name, None)
    if value is None and isinstance(obj, dict):
        value = obj.get(name)
    return default if value is None else value


def idempotency_key_for(order: Order) -> str:
    return f"order-{order.pk}"


def intent_metadata(order: Order, listing: Listing) -> Dict[str, str]:
    return {
        "order_id": str(order.pk),
        "listing_id": str(listing.pk),
        "buyer_id": str(order.buyer_id),
    }


def _secret_key() -> str:
    try:
        return get_payment_config().secret_key
    except ImproperlyConfigured as e:
        log.error("Stripe misconfigured: %s", e)
        raise ConfigurationError("server_misconfig", "Payments are not configured.")


def create_intent(order: Order, listing: Listing) -> ExternalIntent:
    secret_key = _secret_key()
    prefix = get_payment_config().description_prefix

    try:
        intent = stripe.PaymentIntent.create(
            amount=to_minor_units(order.amount, order.currency),
            currency=order.currency.lower(),
            description=f"{prefix} purchase: {listing.title}"[:1000],
            metadata=intent_metadata(order, listing),
            automatic_payment_methods={"enabled": True},
            idempotency_key=idempotency_key_for(order),
            api_key=secret_key,
        )
    except stripe.StripeError as e:
        log.error("Stripe PaymentIntent create failed order=%s: %s", order.pk, getattr(e, "user_message", None) or e)
        raise ExternalServiceError("payment_intent_failed", detail=str(e))

    intent_id = _field(intent, "id", "")
    client_secret = _field(intent, "client_secret", "")
    if not intent_id or not client_secret:
        log.error("Stripe returned an incomplete PaymentIntent for order=%s", order.pk)
        raise ExternalServiceError("payment_intent_failed", detail="missing id or client_secret")

    log.info("PaymentIntent %s created for order=%s", intent_id, order.pk)
    return ExternalIntent(id=str(intent_id), client_secret=str(client_secret), status=str(_field(intent, "status", "")))


def cancel_intent(intent_id: str) -> None:
    if not intent_id or intent_id.startswith(PLACEHOLDER_INTENT_PREFIX):
        return
    secret_key = _secret_key()
    try:
        stripe.PaymentIntent.cancel(intent_id, api_key=secret_key)
    except stripe.StripeError as e:
        log.error("Stripe PaymentIntent cancel failed intent=%s: %s", intent_id, e)
        raise ExternalServiceError("payment_cancel_failed", detail=str(e))
    log.info("PaymentIntent %s cancelled", intent_id)
