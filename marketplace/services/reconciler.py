"""
marketplace.services.reconciler

Stripe webhook reconciliation. Stripe is the only source of truth for
payments; this module turns its (possibly replayed, possibly out-of-order)
event stream into order transitions and access grants.

Flow for one delivery:
1) verify the signature over the raw body (nothing is written on failure)
2) claim the event id in the idempotency ledger
3) dispatch by event type; each handler is idempotent on its own
4) mark the ledger row processed (200) or failed (500, Stripe retries)

Handled types:
- payment_intent.succeeded      pending -> paid, grant upserted
- payment_intent.payment_failed pending -> failed (never downgrades paid)
- charge.refunded               paid -> refunded, grant removed (full refunds only)

Inconsistencies (unknown order, id/currency/amount mismatch, partial refund)
are reported as anomalies and acknowledged; they are not retried.

======== CHANGE LOG ========
- ADD: signature verification with stripe.WebhookSignature over raw bytes.
- ADD: idempotency ledger claim before any handler runs.
- ADD: compare-and-swap transitions; grant + audit in the same transaction.
- ADD: partial refunds are anomalies, access is kept.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import stripe
from django.core.exceptions import ImproperlyConfigured
from django.db import transaction
from django.utils import timezone

from marketplace.conf import get_webhook_secret, get_webhook_tolerance
from marketplace.errors import IntegrityAnomaly
from marketplace.models import Order, OrderStatus
from marketplace.services import grants, idempotency, ledger
from marketplace.services.audit import record_audit, report_anomaly
from marketplace.services.money import to_minor_units

log = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"
CHARGE_REFUNDED = "charge.refunded"


@dataclass(frozen=True)
class WebhookOutcome:
    status: int
    code: str
    message: str = ""
    event_id: str = ""
    event_type: str = ""
    detail: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status < 400

    def as_data(self) -> Dict[str, Any]:
        return {"event_id": self.event_id, "event_type": self.event_type, "result": self.code, **self.detail}


class WebhookRejected(Exception):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def _safe_str(val: Any) -> str:
    return "" if val is None else str(val)


def _object_id(value: Any) -> str:
    """Stripe fields may be an id string or an expanded object."""
    if isinstance(value, dict):
        return _safe_str(value.get("id"))
    return _safe_str(value)


def verify_event(raw_body: bytes, signature_header: Optional[str]) -> Dict[str, Any]:
    if not signature_header:
        raise WebhookRejected("missing_signature", "Missing Stripe-Signature header.")

    secret = get_webhook_secret()
    try:
        payload = raw_body.decode("utf-8")
    except UnicodeDecodeError:
        raise WebhookRejected("invalid_payload", "Invalid payload encoding.")

    try:
        stripe.WebhookSignature.verify_header(payload, signature_header, secret, get_webhook_tolerance())
    except stripe.SignatureVerificationError:
        raise WebhookRejected("bad_signature", "Signature verification failed.")

    try:
        event = json.loads(payload)
    except ValueError:
        raise WebhookRejected("invalid_payload", "Invalid JSON payload.")
    if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
        raise WebhookRejected("invalid_payload", "Event id and type are required.")
    return event


def _data_object(event: Dict[str, Any]) -> Dict[str, Any]:
    obj = (event.get("data") or {}).get("object") or {}
    return obj if isinstance(obj, dict) else {}


def _anomaly(kind: str, event: Dict[str, Any], order: Optional[Order] = None, **detail: Any) -> Dict[str, Any]:
    report_anomaly(
        IntegrityAnomaly(
            kind=kind,
            order_id=str(order.pk) if order is not None else detail.pop("order_ref", None),
            event_id=_safe_str(event.get("id")),
            detail=detail,
        )
    )
    return {"action": "ignored", "reason": kind}


# ------------------------------
# Handlers
# ------------------------------
def handle_payment_succeeded(event: Dict[str, Any]) -> Dict[str, Any]:
    intent = _data_object(event)
    intent_id = _safe_str(intent.get("id"))
    metadata = intent.get("metadata") or {}
    meta_order_id = _safe_str(metadata.get("order_id"))

    order = ledger.find_order_for_event(meta_order_id)
    if order is None:
        return _anomaly("order_not_found", event, order_ref=meta_order_id or None, payment_intent=intent_id)

    if order.payment_intent_id != intent_id:
        return _anomaly("intent_mismatch", event, order, expected=order.payment_intent_id, received=intent_id)

    currency = _safe_str(intent.get("currency")).upper()
    if currency != order.currency.upper():
        return _anomaly("currency_mismatch", event, order, expected=order.currency, received=currency)

    if order.status == OrderStatus.PAID:
        log.info("Order %s already paid; event %s is a no-op", order.pk, event.get("id"))
        return {"action": "noop", "reason": "already_paid", "order_id": str(order.pk)}

    if order.status != OrderStatus.PENDING:
        return _anomaly("success_after_terminal", event, order, status=order.status)

    expected = to_minor_units(order.amount, order.currency)
    received = intent.get("amount_received")
    if received is None:
        received = intent.get("amount")
    if received is not None and int(received) != expected:
        # recorded, but the payment is still applied
        _anomaly("amount_mismatch", event, order, expected=expected, received=received)

    charge_id = _object_id(intent.get("latest_charge"))
    with transaction.atomic():
        updated = ledger.update_order_status(
            order.pk,
            OrderStatus.PENDING,
            OrderStatus.PAID,
            charge_id=charge_id,
            paid_at=timezone.now(),
        )
        if updated is None:
            return {"action": "noop", "reason": "status_changed", "order_id": str(order.pk)}

        grants.upsert_grant(updated)
        record_audit(
            action="payment_completed",
            resource_type="order",
            resource_id=updated.pk,
            old_values={"status": OrderStatus.PENDING},
            new_values={
                "status": OrderStatus.PAID,
                "payment_intent": intent_id,
                "charge_id": charge_id,
                "event_id": _safe_str(event.get("id")),
            },
        )

    log.info("Payment success: order %s paid, grant issued", order.pk)
    return {"action": "paid", "order_id": str(order.pk)}


def handle_payment_failed(event: Dict[str, Any]) -> Dict[str, Any]:
    intent = _data_object(event)
    intent_id = _safe_str(intent.get("id"))
    metadata = intent.get("metadata") or {}

    order = ledger.find_order_for_event(metadata.get("order_id")) or ledger.find_order_by_intent(intent_id)
    if order is None:
        return _anomaly("order_not_found", event, order_ref=_safe_str(metadata.get("order_id")) or None, payment_intent=intent_id)

    if order.payment_intent_id != intent_id:
        return _anomaly("intent_mismatch", event, order, expected=order.payment_intent_id, received=intent_id)

    last_error = intent.get("last_payment_error") or {}
    reason = _safe_str(last_error.get("message") if isinstance(last_error, dict) else "") or "Payment failed."

    with transaction.atomic():
        updated = ledger.update_order_status(order.pk, OrderStatus.PENDING, OrderStatus.FAILED, failure_reason=reason[:1000])
        if updated is None:
            log.info("Payment failure for order %s ignored (status=%s)", order.pk, order.status)
            return {"action": "noop", "reason": "not_pending", "order_id": str(order.pk)}

        record_audit(
            action="payment_failed",
            resource_type="order",
            resource_id=order.pk,
            old_values={"status": OrderStatus.PENDING},
            new_values={
                "status": OrderStatus.FAILED,
                "payment_intent": intent_id,
                "event_id": _safe_str(event.get("id")),
                "failure_message": reason,
            },
        )

    log.info("Payment failed: order %s marked failed", order.pk)
    return {"action": "failed", "order_id": str(order.pk)}


def handle_charge_refunded(event: Dict[str, Any]) -> Dict[str, Any]:
    charge = _data_object(event)
    charge_id = _safe_str(charge.get("id"))
    intent_id = _object_id(charge.get("payment_intent"))

    order = ledger.find_order_by_intent(intent_id) or ledger.find_order_by_charge(charge_id)
    if order is None:
        return _anomaly("order_not_found", event, charge_id=charge_id, payment_intent=intent_id)

    if not charge.get("refunded"):
        return _anomaly(
            "partial_refund",
            event,
            order,
            charge_id=charge_id,
            amount=charge.get("amount"),
            amount_refunded=charge.get("amount_refunded"),
        )

    if order.status == OrderStatus.REFUNDED:
        return {"action": "noop", "reason": "already_refunded", "order_id": str(order.pk)}
    if order.status != OrderStatus.PAID:
        return _anomaly("refund_unexpected_status", event, order, status=order.status, charge_id=charge_id)

    with transaction.atomic():
        updated = ledger.update_order_status(order.pk, OrderStatus.PAID, OrderStatus.REFUNDED, refunded_at=timezone.now())
        if updated is None:
            return {"action": "noop", "reason": "status_changed", "order_id": str(order.pk)}

        revoked = grants.revoke_grant(updated)
        record_audit(
            action="payment_refunded",
            resource_type="order",
            resource_id=order.pk,
            old_values={"status": OrderStatus.PAID},
            new_values={
                "status": OrderStatus.REFUNDED,
                "charge_id": charge_id,
                "event_id": _safe_str(event.get("id")),
                "grant_revoked": bool(revoked),
            },
        )

    log.info("Refund: order %s refunded, grant revoked=%s", order.pk, revoked)
    return {"action": "refunded", "order_id": str(order.pk)}


HANDLERS: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    PAYMENT_SUCCEEDED: handle_payment_succeeded,
    PAYMENT_FAILED: handle_payment_failed,
    CHARGE_REFUNDED: handle_charge_refunded,
}


def dispatch(event: Dict[str, Any]) -> Dict[str, Any]:
    event_type = _safe_str(event.get("type"))
    handler = HANDLERS.get(event_type)
    if handler is None:
        log.info("Unhandled Stripe event type=%s id=%s", event_type, event.get("id"))
        return {"action": "ignored", "reason": "unhandled_type"}
    return handler(event)


def handle_event(raw_body: bytes, signature_header: Optional[str]) -> WebhookOutcome:
    try:
        event = verify_event(raw_body, signature_header)
    except WebhookRejected as e:
        log.warning("Stripe webhook rejected: %s", e.code)
        return WebhookOutcome(status=400, code=e.code, message=e.message)
    except ImproperlyConfigured as e:
        log.error("Stripe webhook misconfigured: %s", e)
        return WebhookOutcome(status=500, code="server_misconfig", message="Webhook not configured.")

    event_id = _safe_str(event.get("id"))
    event_type = _safe_str(event.get("type"))
    log.info("Stripe webhook received: type=%s id=%s", event_type, event_id)

    claim = idempotency.begin_event(event_id, event_type, event)
    if not claim.claimed:
        return WebhookOutcome(
            status=200,
            code="duplicate",
            event_id=event_id,
            event_type=event_type,
            detail={"ledger_status": claim.previous_status},
        )

    try:
        detail = dispatch(event)
    except Exception as e:
        log.exception("Stripe webhook handler error type=%s id=%s", event_type, event_id)
        idempotency.mark_failed(claim.event, f"{type(e).__name__}: {e}")
        return WebhookOutcome(
            status=500,
            code="handler_error",
            message="Webhook processing failed.",
            event_id=event_id,
            event_type=event_type,
        )

    idempotency.mark_processed(claim.event)
    return WebhookOutcome(status=200, code="processed", event_id=event_id, event_type=event_type, detail=detail)
