"""Rate limiting.

Two layers share the ``limits`` fixed-window strategy:

- ``limiter``: slowapi's coarse per-IP limit applied to every API route.
- ``RateLimiter``: per-flow admission control keyed by (scope, identity), where
  identity is a client IP or a target email address. Counters live in a
  pluggable ``limits`` storage (``memory://`` for a single instance,
  ``redis://...`` when several instances must share counts).

Windows are fixed and reset in full at the boundary.
"""

import math
import time
from dataclasses import dataclass

from fastapi import Request
from limits import RateLimitItemPerMinute
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter
from slowapi import Limiter
from slowapi.util import get_remote_address

from netmatch.config import get_settings

settings = get_settings()

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.API_RATE],
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
)


@dataclass(frozen=True)
class RateRule:
    """``limit`` requests per ``window_minutes`` for one scope."""

    scope: str
    limit: int
    window_minutes: int


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    remaining: int
    retry_after_seconds: int = 0


class RateLimiter:
    """Fixed-window admission control over an atomic counter store."""

    def __init__(self, storage_uri: str = "memory://", enabled: bool = True) -> None:
        self._storage = storage_from_string(storage_uri)
        self._strategy = FixedWindowRateLimiter(self._storage)
        self.enabled = enabled

    def hit(self, rule: RateRule, identity: str) -> RateDecision:
        """Count one request for ``identity`` and report whether it is admitted."""
        if not self.enabled:
            return RateDecision(allowed=True, remaining=rule.limit)
        item = RateLimitItemPerMinute(rule.limit, rule.window_minutes)
        allowed = self._strategy.hit(item, rule.scope, identity)
        reset_time, remaining = self._strategy.get_window_stats(item, rule.scope, identity)
        retry_after = 0 if allowed else max(1, math.ceil(reset_time - time.time()))
        return RateDecision(allowed=allowed, remaining=remaining, retry_after_seconds=retry_after)

    def reset(self) -> None:
        """Drop every counter."""
        self._storage.reset()


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


REGISTER_RULE = RateRule("register", *settings.REGISTER_RATE)
LOGIN_RULE = RateRule("login", *settings.LOGIN_RATE)
VERIFY_RULE = RateRule("verify-email", *settings.VERIFY_RATE)
RESEND_RULE = RateRule("resend-verification", *settings.RESEND_RATE)

_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Get singleton admission-control limiter."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter(settings.RATE_LIMIT_STORAGE_URI)
    return _rate_limiter
