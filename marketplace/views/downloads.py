"""
marketplace.views.downloads

POST /files/download/   { "deliverable_id": "<uuid>", "order_id": "<uuid>" (optional) }

200 -> data = { download_url, file_name, expires_in }
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_POST

from marketplace.errors import AuthenticationError, MarketplaceError, ValidationError
from marketplace.serializers import DownloadRequestSerializer, first_error
from marketplace.services.audit import RequestContext
from marketplace.services.auth import current_principal
from marketplace.services.downloads import resolve_download

from ._core import json_err, json_ok, json_server_error, parse_json_body

log = logging.getLogger(__name__)

VER = "downloads.v1"


@require_POST
def download_file(request: HttpRequest) -> JsonResponse:
    try:
        principal = current_principal(request)
        if principal is None:
            raise AuthenticationError("not_authenticated", "Authentication required.")

        ser = DownloadRequestSerializer(data=parse_json_body(request))
        if not ser.is_valid():
            raise ValidationError("invalid_request", first_error(ser.errors))

        ticket = resolve_download(
            principal,
            ser.validated_data["deliverable_id"],
            ser.validated_data.get("order_id"),
            context=RequestContext.from_request(request),
        )
    except MarketplaceError as e:
        return json_err(e, ver=VER)
    except Exception:
        log.exception("Download resolution failed")
        return json_server_error(ver=VER)

    return json_ok(ticket.as_dict(), ver=VER)
