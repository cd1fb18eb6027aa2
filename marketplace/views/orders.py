"""
marketplace.views.orders

POST /orders/   { "listing_id": "<uuid>" }

201 -> data = { order_id, listing_id, listing_title, amount, currency, client_secret }
The client secret is the only processor value returned; the browser confirms
the PaymentIntent with it. Access is granted later, by the webhook.

======== CHANGE LOG ========
- ADD: rate limit headers (X-RateLimit-*) on success and Retry-After on 429.
- ADD: request IP / user agent flow into the audit trail.
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_POST

from marketplace.errors import AuthenticationError, MarketplaceError, ValidationError
from marketplace.serializers import CreateOrderSerializer, first_error
from marketplace.services.audit import RequestContext
from marketplace.services.auth import current_principal
from marketplace.services.checkout import start_purchase

from ._core import json_err, json_ok, json_server_error, parse_json_body

log = logging.getLogger(__name__)

VER = "orders.v1"


@require_POST
def create_order(request: HttpRequest) -> JsonResponse:
    try:
        principal = current_principal(request)
        if principal is None:
            raise AuthenticationError("not_authenticated", "Authentication required.")

        ser = CreateOrderSerializer(data=parse_json_body(request))
        if not ser.is_valid():
            raise ValidationError("invalid_request", first_error(ser.errors))

        result = start_purchase(
            principal,
            ser.validated_data["listing_id"],
            context=RequestContext.from_request(request),
        )
    except MarketplaceError as e:
        return json_err(e, ver=VER)
    except Exception:
        log.exception("Order creation failed")
        return json_server_error(ver=VER)

    return json_ok(result.as_dict(), ver=VER, status=201, headers=result.headers)
