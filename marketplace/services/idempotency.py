"""
marketplace.services.idempotency

Webhook event ledger. The unique event_id column decides who processes an event:

- first insert            -> claimed, process it
- row already processed   -> duplicate, acknowledge
- row received (fresh)    -> another worker has it, acknowledge
- row failed, or received
  past the stale window   -> re-claimed by compare-and-swap, process again

Re-claiming is what makes a processor retry after a 500 meaningful.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional

from django.db import IntegrityError, transaction
from django.db.models import F, Q
from django.utils import timezone

from marketplace.conf import get_integrity_config
from marketplace.models import PaymentEventStatus, ProcessedPaymentEvent

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventClaim:
    event: ProcessedPaymentEvent
    claimed: bool
    previous_status: Optional[str] = None


def begin_event(event_id: str, event_type: str, payload: Dict[str, Any]) -> EventClaim:
    try:
        with transaction.atomic():
            row = ProcessedPaymentEvent.objects.create(
                event_id=event_id,
                event_type=event_type,
                payload=payload,
                status=PaymentEventStatus.RECEIVED,
            )
        return EventClaim(event=row, claimed=True)
    except IntegrityError:
        pass

    row = ProcessedPaymentEvent.objects.get(event_id=event_id)
    previous = row.status
    stale_before = timezone.now() - timedelta(minutes=get_integrity_config().stale_event_minutes)

    reclaimable = Q(status=PaymentEventStatus.FAILED) | Q(
        status=PaymentEventStatus.RECEIVED, received_at__lt=stale_before
    )
    reclaimed = ProcessedPaymentEvent.objects.filter(reclaimable, pk=row.pk).update(
        status=PaymentEventStatus.RECEIVED,
        attempts=F("attempts") + 1,
        received_at=timezone.now(),
        error="",
    )
    if reclaimed:
        row.refresh_from_db()
        log.info("Event %s re-claimed from %s (attempt %s)", event_id, previous, row.attempts)
        return EventClaim(event=row, claimed=True, previous_status=previous)

    log.info("Event %s already %s; skipping", event_id, previous)
    return EventClaim(event=row, claimed=False, previous_status=previous)


def mark_processed(row: ProcessedPaymentEvent) -> None:
    ProcessedPaymentEvent.objects.filter(pk=row.pk).update(
        status=PaymentEventStatus.PROCESSED,
        processed_at=timezone.now(),
        error="",
    )


def mark_failed(row: ProcessedPaymentEvent, error: Any) -> None:
    ProcessedPaymentEvent.objects.filter(pk=row.pk).update(
        status=PaymentEventStatus.FAILED,
        error=str(error)[:2000],
    )
