"""Secure token generation and comparison.

Verification and reset tokens are hex strings drawn from ``secrets``; their
expiry is a naive UTC timestamp, matching what the database stores.
"""

import math
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class IssuedToken:
    """A freshly generated token and the moment it stops being valid."""

    value: str
    expires_at: datetime


def generate_secure_token(num_bytes: int = 32) -> str:
    """Return ``num_bytes`` of randomness, hex-encoded (2 chars per byte)."""
    return secrets.token_hex(num_bytes)


def token_expiry(hours: int, now: datetime | None = None) -> datetime:
    return (now or datetime.utcnow()) + timedelta(hours=hours)


def issue_token(num_bytes: int, ttl_hours: int, now: datetime | None = None) -> IssuedToken:
    """Generate a token together with its expiry timestamp."""
    return IssuedToken(value=generate_secure_token(num_bytes), expires_at=token_expiry(ttl_hours, now))


def is_expired(expires_at: datetime | None, now: datetime | None = None) -> bool:
    """A missing expiry counts as expired."""
    if expires_at is None:
        return True
    return (now or datetime.utcnow()) > expires_at


def tokens_match(presented: str | None, stored: str | None) -> bool:
    """Constant-time token equality. Empty values never match."""
    if not presented or not stored:
        return False
    return secrets.compare_digest(presented.encode("utf-8"), stored.encode("utf-8"))


def minutes_until(moment: datetime, now: datetime | None = None) -> int:
    """Whole minutes remaining until ``moment``, rounded up, never below 1."""
    seconds = (moment - (now or datetime.utcnow())).total_seconds()
    return max(1, math.ceil(seconds / 60))
