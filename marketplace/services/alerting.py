"""
marketplace.services.alerting

Operator alerts. An alert is always logged at WARNING; it is also emailed to
SEEDBAY_ALERT_EMAILS and POSTed as JSON to SEEDBAY_ALERT_WEBHOOK_URL when
those are configured.

Delivery problems are logged and swallowed: an alert must never make the
integrity job itself fail.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List

import requests
from django.conf import settings
from django.core.mail import send_mail
from django.core.serializers.json import DjangoJSONEncoder

from marketplace.conf import get_integrity_config

log = logging.getLogger(__name__)

WEBHOOK_TIMEOUT = 10


def raise_alert(subject: str, payload: Dict[str, Any]) -> List[str]:
    """Returns the channels the alert was delivered to."""
    cfg = get_integrity_config()
    body = json.dumps(payload, cls=DjangoJSONEncoder, indent=2, sort_keys=True)
    log.warning("ALERT %s: %s", subject, json.dumps(payload.get("counts", payload), cls=DjangoJSONEncoder))

    delivered = ["log"]

    if cfg.alert_emails:
        try:
            send_mail(
                subject=f"[SeedBay] {subject}",
                message=body,
                from_email=getattr(settings, "DEFAULT_FROM_EMAIL", None),
                recipient_list=list(cfg.alert_emails),
                fail_silently=False,
            )
            delivered.append("email")
        except Exception:
            log.exception("Alert email delivery failed subject=%s", subject)

    if cfg.alert_webhook_url:
        try:
            resp = requests.post(
                cfg.alert_webhook_url,
                data=json.dumps({"subject": subject, "payload": payload}, cls=DjangoJSONEncoder),
                headers={"Content-Type": "application/json"},
                timeout=WEBHOOK_TIMEOUT,
            )
            resp.raise_for_status()
            delivered.append("webhook")
        except requests.RequestException:
            log.exception("Alert webhook delivery failed subject=%s", subject)

    return delivered
