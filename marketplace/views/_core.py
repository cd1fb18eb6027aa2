"""
marketplace.views._core

Shared response envelope for every JSON endpoint:

  { "ok": true|false, "data": {...}, "error": {"type", "code", "message"}, "ver": "<endpoint version>" }
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from django.http import HttpRequest, JsonResponse

from marketplace.errors import MarketplaceError, ValidationError


def json_ok(
    data: Dict[str, Any],
    *,
    ver: str,
    status: int = 200,
    headers: Optional[Dict[str, str]] = None,
) -> JsonResponse:
    resp = JsonResponse({"ok": True, "data": data, "error": None, "ver": ver}, status=status)
    for name, value in (headers or {}).items():
        resp[name] = value
    return resp


def json_error(
    *,
    ver: str,
    status: int,
    code: str,
    message: str,
    err_type: str = "error",
    headers: Optional[Dict[str, str]] = None,
) -> JsonResponse:
    resp = JsonResponse(
        {
            "ok": False,
            "data": None,
            "error": {"type": err_type, "code": code, "message": message},
            "ver": ver,
        },
        status=status,
    )
    for name, value in (headers or {}).items():
        resp[name] = value
    return resp


def json_err(e: MarketplaceError, *, ver: str) -> JsonResponse:
    return json_error(
        ver=ver,
        status=e.http_status,
        code=e.code,
        message=e.message,
        err_type=e.err_type,
        headers=getattr(e, "headers", None),
    )


def json_server_error(*, ver: str) -> JsonResponse:
    return json_error(
        ver=ver,
        status=500,
        code="internal_error",
        message="Internal server error.",
        err_type="server_error",
    )


def parse_json_body(request: HttpRequest) -> Dict[str, Any]:
    raw = request.body or b""
    if not raw.strip():
        raise ValidationError("missing_body", "Missing JSON body.")
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        raise ValidationError("invalid_json", "Invalid JSON.")
    if not isinstance(payload, dict):
        raise ValidationError("invalid_json", "JSON root must be an object.")
    return payload
