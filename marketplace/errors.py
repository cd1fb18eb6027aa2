"""
marketplace.errors

Error taxonomy for the order / payment / download core.

Every user-facing failure is a MarketplaceError carrying:
- code        : stable machine code (e.g. "order_in_progress")
- message     : safe, human readable message (never processor text or ids)
- http_status : status the views answer with
- err_type    : coarse category for the response envelope

IntegrityAnomaly is not an exception. It records a payment-state inconsistency
that must not block processing (see services.audit.report_anomaly).

======== CHANGE LOG ========
- ADD: MarketplaceError hierarchy mirroring the license API's APIError fields.
- ADD: RateLimitError carries retry_after + limit headers for 429 responses.
- ADD: IntegrityAnomaly record for webhook reconciliation drift.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class MarketplaceError(Exception):
    """Internal exception for consistent JSON error responses."""

    http_status: int = 400
    err_type: str = "validation_error"
    default_code: str = "error"
    default_message: str = "Request failed."

    def __init__(self, code: Optional[str] = None, message: Optional[str] = None) -> None:
        self.code = code or self.default_code
        self.message = message or self.default_message
        super().__init__(self.message)

    def as_dict(self) -> Dict[str, Any]:
        return {"type": self.err_type, "code": self.code, "message": self.message}


class ValidationError(MarketplaceError):
    http_status = 400
    err_type = "validation_error"
    default_code = "invalid_request"
    default_message = "Invalid request."


class AuthenticationError(MarketplaceError):
    http_status = 401
    err_type = "auth_error"
    default_code = "not_authenticated"
    default_message = "Authentication required."


class AuthorizationError(MarketplaceError):
    http_status = 403
    err_type = "permission_error"
    default_code = "forbidden"
    default_message = "Access denied."


class NotFoundError(MarketplaceError):
    http_status = 404
    err_type = "not_found"
    default_code = "not_found"
    default_message = "Not found."


class ConflictError(MarketplaceError):
    http_status = 409
    err_type = "conflict"
    default_code = "conflict"
    default_message = "Conflict."


class RateLimitError(MarketplaceError):
    http_status = 429
    err_type = "rate_limit"
    default_code = "rate_limited"
    default_message = "Too many requests. Try again shortly."

    def __init__(
        self,
        code: Optional[str] = None,
        message: Optional[str] = None,
        *,
        retry_after: int = 60,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(code, message)
        self.retry_after = max(1, int(retry_after))
        self.headers = dict(headers or {})
        self.headers.setdefault("Retry-After", str(self.retry_after))


class ExternalServiceError(MarketplaceError):
    """
    A collaborator (payment processor, blob store) failed.
    The detail is kept for logs only; clients see the generic message.
    """

    http_status = 500
    err_type = "server_error"
    default_code = "external_service_error"
    default_message = "Payment error, please try again."

    def __init__(self, code: Optional[str] = None, message: Optional[str] = None, *, detail: str = "") -> None:
        super().__init__(code, message)
        self.detail = detail


class ConfigurationError(MarketplaceError):
    http_status = 500
    err_type = "server_error"
    default_code = "server_misconfig"
    default_message = "Service not configured."


@dataclass
class IntegrityAnomaly:
    """A payment-state inconsistency worth an operator's attention."""

    kind: str
    order_id: Optional[str] = None
    event_id: Optional[str] = None
    detail: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "order_id": self.order_id,
            "event_id": self.event_id,
            "detail": self.detail,
        }
