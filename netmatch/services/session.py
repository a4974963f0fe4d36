"""Session credential service (signed JWTs)."""

from datetime import datetime, timedelta
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from netmatch.config import Settings, get_settings


class SessionError(Exception):
    """A presented credential was rejected. ``reason`` is for logs only."""

    reason = "invalid"


class MissingSignatureError(SessionError):
    reason = "missing_signature"


class InvalidSignatureError(SessionError):
    reason = "invalid_signature"


class SessionExpiredError(SessionError):
    reason = "expired"


class MissingIdentityError(SessionError):
    reason = "missing_identity"


class SessionService:
    """Mints and verifies 24-hour session credentials."""

    def __init__(self, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self.secret_key = settings.JWT_SECRET_KEY
        self.algorithm = settings.JWT_ALGORITHM
        self.ttl = timedelta(hours=settings.SESSION_TTL_HOURS)

    def issue(self, account_id: int, email: str, email_verified: bool, is_admin: bool) -> str:
        """Create a signed credential for the given account."""
        now = datetime.utcnow()
        payload = {
            "sub": str(account_id),
            "email": email,
            "emailVerified": email_verified,
            "isAdmin": is_admin,
            "iat": now,
            "exp": now + self.ttl,
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: str | None) -> dict[str, Any]:
        """Decode a credential and return its claims. Raises a SessionError subclass."""
        if not token or token.count(".") != 2 or not token.rsplit(".", 1)[1]:
            raise MissingSignatureError("credential carries no signature")
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError as exc:
            raise SessionExpiredError(str(exc)) from exc
        except JWTError as exc:
            raise InvalidSignatureError(str(exc)) from exc
        if not payload.get("sub"):
            raise MissingIdentityError("credential has no subject claim")
        return payload


_session_service: SessionService | None = None


def get_session_service() -> SessionService:
    """Get singleton session service instance."""
    global _session_service
    if _session_service is None:
        _session_service = SessionService()
    return _session_service
