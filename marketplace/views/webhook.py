"""
marketplace.views.webhook

POST /payments/webhook/  (Stripe -> Django, raw body + Stripe-Signature)

200  processed, duplicate or ignored event
400  missing/bad signature, stale timestamp, invalid JSON (nothing written)
500  handler failure; Stripe retries the delivery

CSRF exempt: authenticity comes from the signature, not a session.
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from marketplace.services.reconciler import handle_event

from ._core import json_error, json_ok, json_server_error

log = logging.getLogger(__name__)

VER = "stripe-webhook.v1"


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> JsonResponse:
    try:
        outcome = handle_event(request.body, request.META.get("HTTP_STRIPE_SIGNATURE", ""))
    except Exception:
        log.exception("Stripe webhook crashed before dispatch")
        return json_server_error(ver=VER)

    if outcome.ok:
        return json_ok(outcome.as_data(), ver=VER, status=outcome.status)

    return json_error(
        ver=VER,
        status=outcome.status,
        code=outcome.code,
        message=outcome.message,
        err_type="validation_error" if outcome.status == 400 else "server_error",
    )
