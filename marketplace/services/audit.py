"""
marketplace.services.audit

Append-only audit trail (AuditLogEntry) plus anomaly reporting.

record_audit() raises on failure; callers decide whether an audit write is
part of their transaction (webhook handlers) or best effort (order creation).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction
from django.http import HttpRequest

from marketplace.errors import IntegrityAnomaly
from marketplace.models import AuditLogEntry
from marketplace.services.rate_limit import get_client_ip

log = logging.getLogger(__name__)
anomaly_log = logging.getLogger("marketplace.reconciler")


@dataclass(frozen=True)
class RequestContext:
    ip_address: str = ""
    user_agent: str = ""

    @classmethod
    def from_request(cls, request: Optional[HttpRequest]) -> "RequestContext":
        if request is None:
            return cls()
        return cls(
            ip_address=get_client_ip(request),
            user_agent=(request.META.get("HTTP_USER_AGENT") or "")[:512],
        )


SYSTEM_CONTEXT = RequestContext()


def _jsonable(values: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if values is None:
        return None
    return json.loads(json.dumps(values, cls=DjangoJSONEncoder))


def record_audit(
    *,
    action: str,
    resource_type: str,
    resource_id: Any = "",
    actor_id: Optional[int] = None,
    old_values: Optional[Dict[str, Any]] = None,
    new_values: Optional[Dict[str, Any]] = None,
    context: Optional[RequestContext] = None,
) -> AuditLogEntry:
    ctx = context or SYSTEM_CONTEXT
    return AuditLogEntry.objects.create(
        actor_id=actor_id,
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id or "")[:64],
        old_values=_jsonable(old_values),
        new_values=_jsonable(new_values),
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )


def report_anomaly(anomaly: IntegrityAnomaly) -> None:
    """Log at WARNING and persist; anomalies never raise."""
    anomaly_log.warning(
        "Payment anomaly kind=%s order=%s event=%s detail=%s",
        anomaly.kind,
        anomaly.order_id,
        anomaly.event_id,
        anomaly.detail,
    )
    try:
        with transaction.atomic():
            record_audit(
                action=f"payment_{anomaly.kind}",
                resource_type="order",
                resource_id=anomaly.order_id or "",
                new_values=anomaly.as_dict(),
            )
    except Exception:
        log.exception("Failed to persist anomaly kind=%s", anomaly.kind)
