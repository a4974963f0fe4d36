"""FastAPI dependencies: service wiring and session authentication."""

import logging
from dataclasses import dataclass

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from netmatch.config import get_settings
from netmatch.database import get_db
from netmatch.errors import ApiError
from netmatch.services.account_store import AccountStore
from netmatch.services.auth import AccountService
from netmatch.services.notifications import Notifier, get_notifier
from netmatch.services.session import SessionError, SessionService, get_session_service

logger = logging.getLogger("netmatch")


@dataclass
class CurrentAccount:
    """Authenticated account context, taken from session claims."""

    account_id: int
    email: str
    email_verified: bool
    is_admin: bool


def get_account_service(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    sessions: SessionService = Depends(get_session_service),
) -> AccountService:
    """Account service bound to the request's database session."""
    return AccountService(get_settings(), AccountStore(db), notifier, sessions)


def bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:].strip()
    return None


def get_current_account(
    request: Request,
    sessions: SessionService = Depends(get_session_service),
) -> CurrentAccount:
    """Validate the Bearer credential. Every rejection is a plain 401; the reason is only logged."""
    try:
        claims = sessions.verify(bearer_token(request))
    except SessionError as exc:
        logger.info("Rejected session credential (%s): %s", exc.reason, exc)
        raise ApiError(401, "Not authenticated") from exc

    return CurrentAccount(
        account_id=int(claims["sub"]),
        email=claims.get("email", ""),
        email_verified=bool(claims.get("emailVerified")),
        is_admin=bool(claims.get("isAdmin")),
    )
