"""
marketplace.services.downloads

Download gate. Every request re-checks ownership from the database; storage
row-level rules are not trusted on their own.

Check order:
  authenticated                                 401
  deliverable (and its order) exists            404
  claimed order matches the deliverable         403
  requester is the order's buyer                403
  listing not archived                          403
  requester is not the seller                   403
  grant exists for (requester, listing, order)  403

All 403s share one message; the precise reason goes to the log only.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from marketplace.conf import get_storage_config
from marketplace.errors import AuthenticationError, AuthorizationError, ExternalServiceError, NotFoundError
from marketplace.models import Deliverable, DownloadAudit
from marketplace.services.audit import SYSTEM_CONTEXT, RequestContext
from marketplace.services.auth import Principal
from marketplace.services.grants import has_grant
from marketplace.services.storage import BlobStoreError, file_name_for, get_blob_store, normalize_storage_path

log = logging.getLogger(__name__)

ACCESS_DENIED = "Access denied."


@dataclass(frozen=True)
class DownloadTicket:
    download_url: str
    file_name: str
    expires_in: int

    def as_dict(self) -> Dict[str, Any]:
        return {"download_url": self.download_url, "file_name": self.file_name, "expires_in": self.expires_in}


def _deny(reason: str, principal: Principal, deliverable_id: Any) -> AuthorizationError:
    log.warning("Download denied reason=%s user=%s deliverable=%s", reason, principal.id, deliverable_id)
    return AuthorizationError("access_denied", ACCESS_DENIED)


def _same_id(a: Any, b: Any) -> bool:
    try:
        return uuid.UUID(str(a)) == uuid.UUID(str(b))
    except (TypeError, ValueError):
        return False


def resolve_download(
    principal: Optional[Principal],
    deliverable_id: Any,
    claimed_order_id: Any = None,
    *,
    context: RequestContext = SYSTEM_CONTEXT,
) -> DownloadTicket:
    if principal is None:
        raise AuthenticationError("not_authenticated", "Authentication required.")

    deliverable = None
    try:
        deliverable = (
            Deliverable.objects.select_related("order", "order__listing")
            .filter(pk=uuid.UUID(str(deliverable_id)))
            .first()
        )
    except (TypeError, ValueError):
        deliverable = None
    if deliverable is None:
        raise NotFoundError("not_found", "Deliverable not found.")

    order = deliverable.order
    listing = order.listing

    if claimed_order_id is not None and not _same_id(claimed_order_id, order.pk):
        raise _deny("order_mismatch", principal, deliverable_id)
    if order.buyer_id != principal.id:
        raise _deny("not_buyer", principal, deliverable_id)
    if listing.is_archived:
        raise _deny("listing_archived", principal, deliverable_id)
    if listing.seller_id == principal.id:
        raise _deny("seller_download", principal, deliverable_id)
    if not has_grant(principal.id, listing.pk, order_id=order.pk):
        raise _deny("no_grant", principal, deliverable_id)

    cfg = get_storage_config()
    object_path = normalize_storage_path(deliverable.object_path, cfg.bucket)
    if not object_path:
        log.error("Deliverable %s has an unusable storage path", deliverable.pk)
        raise ExternalServiceError("invalid_deliverable", "Unable to prepare this download.")

    try:
        url = get_blob_store().issue_temporary_download_url(object_path, cfg.url_ttl)
    except BlobStoreError as e:
        log.error("Signed URL failed for deliverable %s: %s", deliverable.pk, e)
        raise ExternalServiceError("storage_error", "Failed to generate download URL.", detail=str(e))

    DownloadAudit.objects.create(
        order=order,
        deliverable=deliverable,
        requester_id=principal.id,
        ip_address=context.ip_address,
        user_agent=context.user_agent,
    )
    log.info("Download URL issued deliverable=%s user=%s ttl=%s", deliverable.pk, principal.id, cfg.url_ttl)

    return DownloadTicket(download_url=url, file_name=file_name_for(object_path), expires_in=cfg.url_ttl)
