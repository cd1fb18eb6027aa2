"""
marketplace.conf

Typed access to the marketplace settings.

settings.py loads the environment (python-dotenv) into Django settings; this
module reads them back as frozen config objects. Accessors are called at use
time so tests can override settings per case.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured


@dataclass(frozen=True)
class PaymentConfig:
    secret_key: str
    description_prefix: str


@dataclass(frozen=True)
class StorageConfig:
    base_url: str
    service_key: str
    bucket: str
    url_ttl: int
    backend: str


@dataclass(frozen=True)
class IntegrityConfig:
    cron_secret: str
    lookback_days: int
    stale_event_minutes: int
    alert_emails: Tuple[str, ...]
    alert_webhook_url: str


@dataclass(frozen=True)
class RateLimitConfig:
    limit: int
    window: int


def _setting(name: str, default=None):
    value = getattr(settings, name, default)
    if isinstance(value, str):
        value = value.strip()
    return value


def _require(name: str) -> str:
    value = _setting(name, "")
    if not value:
        raise ImproperlyConfigured(f"Missing required setting {name}.")
    return value


def get_payment_config() -> PaymentConfig:
    return PaymentConfig(
        secret_key=_require("STRIPE_SECRET_KEY"),
        description_prefix=_setting("SEEDBAY_PAYMENT_DESCRIPTION_PREFIX", "SeedBay") or "SeedBay",
    )


def get_webhook_secret() -> str:
    return _require("STRIPE_WEBHOOK_SECRET")


def get_webhook_tolerance() -> int:
    return int(_setting("STRIPE_WEBHOOK_TOLERANCE", 300))


def get_storage_config() -> StorageConfig:
    return StorageConfig(
        base_url=(_setting("SUPABASE_URL", "") or "").rstrip("/"),
        service_key=_setting("SUPABASE_SERVICE_ROLE_KEY", ""),
        bucket=_setting("SEEDBAY_STORAGE_BUCKET", "project-files") or "project-files",
        url_ttl=int(_setting("SEEDBAY_DOWNLOAD_URL_TTL", 300)),
        backend=_setting("SEEDBAY_BLOB_STORE", "marketplace.services.storage.SupabaseBlobStore"),
    )


def get_integrity_config() -> IntegrityConfig:
    emails = _setting("SEEDBAY_ALERT_EMAILS", ()) or ()
    if isinstance(emails, str):
        emails = [e for e in emails.split(",")]
    return IntegrityConfig(
        cron_secret=_setting("CRON_SECRET", ""),
        lookback_days=int(_setting("CRON_LOOKBACK_DAYS", 7)),
        stale_event_minutes=int(_setting("SEEDBAY_STALE_EVENT_MINUTES", 15)),
        alert_emails=tuple(e.strip() for e in emails if e and e.strip()),
        alert_webhook_url=_setting("SEEDBAY_ALERT_WEBHOOK_URL", "") or "",
    )


def get_rate_limit_config() -> RateLimitConfig:
    return RateLimitConfig(
        limit=int(_setting("SEEDBAY_ORDER_RATE_LIMIT", 10)),
        window=int(_setting("SEEDBAY_ORDER_RATE_WINDOW", 60)),
    )
