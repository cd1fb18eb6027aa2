"""
marketplace.services.integrity

Integrity audit over a recent window. Read-only with respect to orders and
grants: it reports drift and raises an alert, an operator fixes it.

Findings:
- paid_orders_missing_purchases   paid order, no grant bound to it
- purchases_without_paid_order    grant whose order is not paid
- deliverables_without_paid_order deliverable attached to an unpaid order
- pending_payment_events          ledger rows stuck in `received`
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional

from django.db.models import Q
from django.utils import timezone

from marketplace.conf import get_integrity_config
from marketplace.models import (
    Deliverable,
    Order,
    OrderStatus,
    PaymentEventStatus,
    ProcessedPaymentEvent,
    PurchaseGrant,
)
from marketplace.services.alerting import raise_alert
from marketplace.services.audit import record_audit

log = logging.getLogger(__name__)

PENDING_EVENTS_LIMIT = 200

FINDINGS = (
    "paid_orders_missing_purchases",
    "purchases_without_paid_order",
    "deliverables_without_paid_order",
    "pending_payment_events",
)


@dataclass
class IntegrityReport:
    lookback_days: int
    paid_orders_missing_purchases: List[str] = field(default_factory=list)
    purchases_without_paid_order: List[str] = field(default_factory=list)
    deliverables_without_paid_order: List[str] = field(default_factory=list)
    pending_payment_events: List[str] = field(default_factory=list)
    alerted: bool = False

    @property
    def counts(self) -> Dict[str, int]:
        return {name: len(getattr(self, name)) for name in FINDINGS}

    @property
    def has_issues(self) -> bool:
        return any(self.counts.values())

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"lookback_days": self.lookback_days}
        for name in FINDINGS:
            data[name] = list(getattr(self, name))
        data["counts"] = self.counts
        return data


def normalize_secret(value: Optional[str]) -> str:
    """Strip whitespace, one pair of surrounding quotes and stray newlines."""
    if not value:
        return ""
    v = value.strip()
    if len(v) >= 2 and v[0] == v[-1] and v[0] in ("'", '"'):
        v = v[1:-1]
    return v.replace("\\n", "").replace("\r", "").replace("\n", "").strip()


def is_authorized(provided: Optional[str]) -> bool:
    expected = normalize_secret(get_integrity_config().cron_secret)
    given = normalize_secret(provided)
    return bool(expected and given and hmac.compare_digest(given, expected))


def run_integrity_check(
    lookback_days: Optional[int] = None,
    stale_after_minutes: Optional[int] = None,
    *,
    alert: bool = True,
) -> IntegrityReport:
    cfg = get_integrity_config()
    days = cfg.lookback_days if lookback_days is None else int(lookback_days)
    stale_minutes = cfg.stale_event_minutes if stale_after_minutes is None else int(stale_after_minutes)

    now = timezone.now()
    since = now - timedelta(days=days)
    stale_before = now - timedelta(minutes=stale_minutes)

    report = IntegrityReport(lookback_days=days)

    report.paid_orders_missing_purchases = [
        str(pk)
        for pk in Order.objects.filter(status=OrderStatus.PAID, created_at__gte=since)
        .exclude(purchase_grants__isnull=False)
        .values_list("pk", flat=True)
    ]

    report.purchases_without_paid_order = [
        str(pk)
        for pk in PurchaseGrant.objects.filter(created_at__gte=since)
        .exclude(order__status=OrderStatus.PAID)
        .values_list("pk", flat=True)
    ]

    recent_deliverables = Q(delivered_at__gte=since) | Q(delivered_at__isnull=True, created_at__gte=since)
    report.deliverables_without_paid_order = [
        str(pk)
        for pk in Deliverable.objects.filter(recent_deliverables)
        .exclude(order__status=OrderStatus.PAID)
        .values_list("pk", flat=True)
    ]

    report.pending_payment_events = list(
        ProcessedPaymentEvent.objects.filter(status=PaymentEventStatus.RECEIVED, received_at__lt=stale_before)
        .order_by("received_at")
        .values_list("event_id", flat=True)[:PENDING_EVENTS_LIMIT]
    )

    result = report.as_dict()
    record_audit(
        action="integrity_check",
        resource_type="system",
        new_values=result,
    )
    log.info("Integrity check finished lookback_days=%s counts=%s", days, report.counts)

    if report.has_issues and alert:
        raise_alert("Integrity check detected issues", result)
        report.alerted = True

    return report
