"""Authentication API endpoints."""

import logging

from fastapi import APIRouter, Depends, Request

from netmatch.dependencies import bearer_token, get_account_service
from netmatch.errors import ApiError
from netmatch.rate_limit import (
    LOGIN_RULE,
    REGISTER_RULE,
    RESEND_RULE,
    VERIFY_RULE,
    RateLimiter,
    RateRule,
    client_ip,
    get_rate_limiter,
)
from netmatch.schemas.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    ResendVerificationRequest,
    ResetPasswordRequest,
    SessionResponse,
    VerifyEmailResponse,
)
from netmatch.services.auth import AccountService, ErrorCode, Failure
from netmatch.services.session import SessionError, SessionService, get_session_service

logger = logging.getLogger("netmatch")

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])

RATE_LIMIT_MESSAGES = {
    "register": "Too many registration attempts. Try again in 15 minutes.",
    "login": "Too many login attempts. Try again in 15 minutes.",
    "verify-email": "Too many verification attempts. Try again in 1 hour.",
    "resend-verification": "Too many verification emails requested. Try again in 1 hour.",
}


def admit(rate_limiter: RateLimiter, rule: RateRule, identity: str) -> None:
    """Count a request against ``rule``; raise 429 once the window is exhausted."""
    decision = rate_limiter.hit(rule, identity)
    if not decision.allowed:
        logger.warning("Rate limit hit for %s", rule.scope)
        raise ApiError(
            429,
            RATE_LIMIT_MESSAGES[rule.scope],
            ErrorCode.RATE_LIMITED,
            headers={"Retry-After": str(decision.retry_after_seconds)},
        )


def raise_for_failure(result):
    if isinstance(result, Failure):
        raise ApiError.from_failure(result)
    return result


@router.post("/register", response_model=RegisterResponse, status_code=201)
def register(
    request: Request,
    body: RegisterRequest,
    service: AccountService = Depends(get_account_service),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
) -> RegisterResponse:
    """Register a new account. No session is issued until the email is verified."""
    admit(rate_limiter, REGISTER_RULE, client_ip(request))
    profile = body.model_dump(include={"city", "skill_level", "phone"}, exclude_none=True)
    result = raise_for_failure(service.register(body.email, body.password, profile))
    return RegisterResponse(message=result.message, account=result.account, next_step=result.next_step)


@router.post("/login", response_model=LoginResponse)
def login(
    request: Request,
    body: LoginRequest,
    service: AccountService = Depends(get_account_service),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
) -> LoginResponse:
    """Authenticate and receive a session credential."""
    admit(rate_limiter, LOGIN_RULE, client_ip(request))
    result = raise_for_failure(service.login(body.email, body.password))
    return LoginResponse(message=result.message, account=result.account, token=result.token)


@router.get("/verify-email", response_model=VerifyEmailResponse)
def verify_email(
    request: Request,
    token: str | None = None,
    email: str | None = None,
    service: AccountService = Depends(get_account_service),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
) -> VerifyEmailResponse:
    """Confirm an email address with the link sent at registration."""
    admit(rate_limiter, VERIFY_RULE, client_ip(request))
    result = raise_for_failure(service.verify_email(token, email))
    return VerifyEmailResponse(message=result.message, code=result.code.value)


@router.post("/resend-verification", response_model=MessageResponse)
def resend_verification(
    request: Request,
    body: ResendVerificationRequest,
    service: AccountService = Depends(get_account_service),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
) -> MessageResponse:
    """Send a fresh verification link. Limited per target address."""
    identity = body.email.strip().lower() or client_ip(request)
    admit(rate_limiter, RESEND_RULE, identity)
    result = raise_for_failure(service.resend_verification(body.email))
    return MessageResponse(message=result.message, email=result.email)


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(
    body: ForgotPasswordRequest,
    service: AccountService = Depends(get_account_service),
) -> MessageResponse:
    """Request a password reset email. The response does not reveal whether the account exists."""
    result = raise_for_failure(service.forgot_password(body.email))
    return MessageResponse(message=result.message)


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(
    body: ResetPasswordRequest,
    service: AccountService = Depends(get_account_service),
) -> MessageResponse:
    """Set a new password using the emailed reset token."""
    result = raise_for_failure(service.reset_password(body.token, body.email, body.password, body.confirm_password))
    return MessageResponse(message=result.message)


@router.get("/session", response_model=SessionResponse)
def session_info(
    request: Request,
    sessions: SessionService = Depends(get_session_service),
) -> SessionResponse:
    """Validate the Bearer credential and return its claims."""
    try:
        claims = sessions.verify(bearer_token(request))
    except SessionError as exc:
        logger.info("Rejected session credential (%s)", exc.reason)
        raise ApiError(401, "Not authenticated") from exc

    return SessionResponse(
        account_id=claims["sub"],
        email=claims.get("email", ""),
        email_verified=bool(claims.get("emailVerified")),
        is_admin=bool(claims.get("isAdmin")),
    )
