"""
marketplace.views.integrity

GET /integrity-check/   (cron)

Shared secret (CRON_SECRET), accepted in this order:
  Authorization: Bearer <secret>
  X-Cron-Secret: <secret>
  ?secret=<secret>
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_GET

from marketplace.services.integrity import is_authorized, run_integrity_check

from ._core import json_error, json_ok

log = logging.getLogger(__name__)

VER = "integrity-check.v1"


def _provided_secret(request: HttpRequest) -> str:
    auth = request.headers.get("Authorization") or ""
    if auth.startswith("Bearer "):
        return auth[len("Bearer "):]
    return request.headers.get("X-Cron-Secret") or request.GET.get("secret") or ""


@require_GET
def integrity_check(request: HttpRequest) -> JsonResponse:
    if not is_authorized(_provided_secret(request)):
        return json_error(ver=VER, status=401, code="unauthorized", message="Unauthorized.", err_type="auth_error")

    try:
        report = run_integrity_check()
    except Exception:
        log.exception("Integrity check failed")
        return json_error(ver=VER, status=500, code="integrity_check_failed", message="Cron failed.", err_type="server_error")

    return json_ok({"status": "ok", **report.as_dict()}, ver=VER)
