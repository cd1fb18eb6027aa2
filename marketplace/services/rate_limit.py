"""
marketplace.services.rate_limit

Cache-based fixed window limiter.

Counters live in the Django cache under `seedbay:rl:<scope>:<key>:<window>`.
With the default LocMemCache the limit is per process; pointing CACHES at a
shared backend makes it global without code changes.

Fail-open on cache errors: the order flow's real guards are the database
constraints, the limiter only slows down abuse.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict

from django.core.cache import cache
from django.http import HttpRequest
from django.utils import timezone

from marketplace.errors import RateLimitError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after: int

    def headers(self) -> Dict[str, str]:
        h = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }
        if not self.allowed:
            h["Retry-After"] = str(self.retry_after)
        return h


def get_client_ip(request: HttpRequest) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, CF-Connecting-IP, REMOTE_ADDR."""
    xff = request.META.get("HTTP_X_FORWARDED_FOR") or ""
    if xff.strip():
        return xff.split(",")[0].strip()[:64]
    for header in ("HTTP_X_REAL_IP", "HTTP_CF_CONNECTING_IP", "REMOTE_ADDR"):
        value = (request.META.get(header) or "").strip()
        if value:
            return value[:64]
    return "unknown"


def check_rate_limit(scope: str, key: str, limit: int, window: int) -> RateLimitResult:
    now = int(timezone.now().timestamp())
    bucket = now // window
    reset_at = (bucket + 1) * window
    cache_key = f"seedbay:rl:{scope}:{key}:{bucket}"

    try:
        if cache.add(cache_key, 1, timeout=window + 5):
            count = 1
        else:
            count = cache.incr(cache_key)
    except ValueError:
        # expired between add() and incr()
        cache.set(cache_key, 1, timeout=window + 5)
        count = 1
    except Exception:
        log.exception("Rate limiter cache error scope=%s", scope)
        return RateLimitResult(True, limit, limit, reset_at, 0)

    allowed = count <= limit
    return RateLimitResult(
        allowed=allowed,
        limit=limit,
        remaining=max(0, limit - count),
        reset_at=reset_at,
        retry_after=max(1, reset_at - now),
    )


def enforce_rate_limit(scope: str, key: str, limit: int, window: int) -> RateLimitResult:
    result = check_rate_limit(scope, key, limit, window)
    if not result.allowed:
        raise RateLimitError(
            message="Too many requests. Please try again later.",
            retry_after=result.retry_after,
            headers=result.headers(),
        )
    return result
