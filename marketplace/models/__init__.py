# -*- coding: utf-8 -*-
"""
Marketplace models package entrypoint.

The app uses a models/ package (not a single models.py); Django discovers
models when these modules are imported.
"""

from .profile import Profile, ProfileRole
from .listing import Listing, ListingStatus
from .order import (
    ALLOWED_TRANSITIONS,
    IN_FLIGHT_STATUSES,
    PLACEHOLDER_INTENT_PREFIX,
    Order,
    OrderStatus,
)
from .purchase import PurchaseGrant
from .deliverable import Deliverable
from .payment_event import PaymentEventStatus, ProcessedPaymentEvent
from .audit import AuditLogEntry, DownloadAudit

__all__ = [
    "ALLOWED_TRANSITIONS",
    "AuditLogEntry",
    "Deliverable",
    "DownloadAudit",
    "IN_FLIGHT_STATUSES",
    "Listing",
    "ListingStatus",
    "Order",
    "OrderStatus",
    "PLACEHOLDER_INTENT_PREFIX",
    "PaymentEventStatus",
    "ProcessedPaymentEvent",
    "Profile",
    "ProfileRole",
    "PurchaseGrant",
]
