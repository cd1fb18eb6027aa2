"""
marketplace.services.checkout

Purchase orchestration:

    rate limit -> create order -> create intent -> attach intent id -> audit

A failed intent create deletes the pending order. A failed attach cancels the
intent and deletes the order. The caller only ever sees the client secret,
never the intent object.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from django.db import transaction

from marketplace.conf import get_rate_limit_config
from marketplace.errors import AuthenticationError, ExternalServiceError, MarketplaceError, RateLimitError
from marketplace.services import ledger, payments
from marketplace.services.audit import SYSTEM_CONTEXT, RequestContext, record_audit
from marketplace.services.auth import Principal
from marketplace.services.money import format_amount
from marketplace.services.rate_limit import enforce_rate_limit

log = logging.getLogger(__name__)

RATE_LIMIT_SCOPE = "create_order"


@dataclass(frozen=True)
class PurchaseResult:
    order_id: str
    listing_id: str
    listing_title: str
    amount: str
    currency: str
    client_secret: str
    headers: Dict[str, str] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "listing_id": self.listing_id,
            "listing_title": self.listing_title,
            "amount": self.amount,
            "currency": self.currency,
            "client_secret": self.client_secret,
        }


def _audit_quietly(**kwargs: Any) -> None:
    try:
        with transaction.atomic():
            record_audit(**kwargs)
    except Exception:
        log.exception("Audit write failed action=%s", kwargs.get("action"))


def _rollback(order, intent_id: Optional[str] = None) -> None:
    if intent_id:
        try:
            payments.cancel_intent(intent_id)
        except Exception:
            log.exception("Could not cancel intent %s during rollback of order %s", intent_id, order.pk)
    try:
        ledger.discard_pending_order(order)
    except Exception:
        log.exception("Could not discard order %s during rollback", order.pk)


def start_purchase(
    principal: Optional[Principal],
    listing_id: Any,
    *,
    context: RequestContext = SYSTEM_CONTEXT,
) -> PurchaseResult:
    if principal is None:
        raise AuthenticationError("not_authenticated", "Authentication required.")

    rl_cfg = get_rate_limit_config()
    try:
        rl = enforce_rate_limit(RATE_LIMIT_SCOPE, str(principal.id), rl_cfg.limit, rl_cfg.window)
    except RateLimitError:
        log.warning("Order rate limit hit user=%s ip=%s", principal.id, context.ip_address)
        _audit_quietly(
            action="create_order_rate_limited",
            resource_type="order",
            actor_id=principal.id,
            new_values={"listing_id": str(listing_id)},
            context=context,
        )
        raise

    order = ledger.create_order(principal, listing_id)
    listing = order.listing

    try:
        intent = payments.create_intent(order, listing)
    except Exception:
        log.exception("Intent creation failed for order %s", order.pk)
        _rollback(order)
        raise

    try:
        if not ledger.attach_payment_intent(order, intent.id):
            raise ExternalServiceError("order_state_changed", detail=f"order {order.pk} left pending before attach")
    except Exception as e:
        log.exception("Attaching intent %s to order %s failed", intent.id, order.pk)
        _rollback(order, intent.id)
        if isinstance(e, MarketplaceError):
            raise
        raise ExternalServiceError("payment_intent_failed", detail=str(e))

    _audit_quietly(
        action="create_order",
        resource_type="order",
        resource_id=order.pk,
        actor_id=principal.id,
        new_values={
            "listing_id": str(listing.pk),
            "amount": format_amount(order.amount, order.currency),
            "currency": order.currency,
            "status": order.status,
        },
        context=context,
    )

    return PurchaseResult(
        order_id=str(order.pk),
        listing_id=str(listing.pk),
        listing_title=listing.title,
        amount=format_amount(order.amount, order.currency),
        currency=order.currency,
        client_secret=intent.client_secret,
        headers=rl.headers(),
    )
