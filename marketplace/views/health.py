"""
marketplace.views.health

GET /health/           liveness only
GET /health/?deep=1    + database round-trip + orders-table column probe (503 when degraded)
"""

from __future__ import annotations

import logging

from django.conf import settings
from django.db import DatabaseError, connection
from django.http import HttpRequest, JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_GET

from marketplace.services.schema_probe import ColumnCapabilityProbe

from ._core import json_error, json_ok

log = logging.getLogger(__name__)

VER = "health.v1"


@require_GET
def health(request: HttpRequest) -> JsonResponse:
    data = {
        "status": "ok",
        "timestamp": timezone.now().isoformat(),
        "debug": bool(settings.DEBUG),
    }
    if request.GET.get("deep") != "1":
        return json_ok(data, ver=VER)

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
        schema = ColumnCapabilityProbe().report()
    except DatabaseError:
        log.exception("Health check: database unreachable")
        return json_error(ver=VER, status=503, code="db_error", message="Database unavailable.", err_type="degraded")

    if not schema["ok"]:
        log.error("Health check: orders table missing columns %s", schema["missing_columns"])
        return json_error(ver=VER, status=503, code="schema_drift", message="Database schema is out of date.", err_type="degraded")

    data.update({"db": "ok", "schema": schema})
    return json_ok(data, ver=VER)
