"""Account lifecycle service.

Registration, login with lockout, email verification, verification resend,
forgot/reset password and password change. Each operation returns either its
success dataclass or a ``Failure`` carrying a machine-readable ``ErrorCode``;
routers decide how a failure is rendered.

All account writes go through ``AccountStore``. Multi-step mutations use its
single-statement primitives rather than read-then-write in Python.
"""

import functools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from netmatch.config import Settings
from netmatch.models.account import Account
from netmatch.security.passwords import PasswordHasher
from netmatch.security.tokens import is_expired, issue_token, minutes_until, tokens_match
from netmatch.security.validation import (
    PASSWORD_REQUIRED,
    check_email_format,
    normalize_email,
    sanitize_profile,
    validate_email,
    validate_password,
    validate_reset_password,
)
from netmatch.services.account_store import AccountNotFoundError, AccountStore, AccountStoreError, EmailTakenError
from netmatch.services.notifications import Notifier
from netmatch.services.session import SessionService

logger = logging.getLogger("netmatch")

EMAIL_VERIFICATION_REQUIRED = "EMAIL_VERIFICATION_REQUIRED"

REGISTRATION_SUCCESS = "Registration complete! Check your email to verify your account."
CREDENTIALS_INVALID = "Invalid email or password"
EMAIL_NOT_VERIFIED = "Email not verified. Check your inbox or request a new verification link."
EMAIL_EXISTS_VERIFIED = "An account with this email already exists. Try logging in."
EMAIL_EXISTS_UNVERIFIED = (
    "An account with this email already exists but is not verified. "
    "Check your email or request a new verification link."
)
VERIFICATION_SUCCESS_MESSAGE = "Email verified! You can now log in."
ALREADY_VERIFIED_MESSAGE = "Email already verified! You can log in."
FORGOT_PASSWORD_MESSAGE = "If an account exists for that email, you will receive password reset instructions."
DELIVERY_FAILED_MESSAGE = "We could not send the email. Please try again later."
INTERNAL_ERROR_MESSAGE = "Internal server error. Please try again later."


class ErrorCode(str, Enum):
    """Machine-readable failure codes returned to callers."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    MISSING_PARAMS = "MISSING_PARAMS"
    PASSWORD_MISMATCH = "PASSWORD_MISMATCH"
    EMAIL_EXISTS_VERIFIED = "EMAIL_EXISTS_VERIFIED"
    EMAIL_EXISTS_UNVERIFIED = "EMAIL_EXISTS_UNVERIFIED"
    CREDENTIALS_INVALID = "CREDENTIALS_INVALID"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    EMAIL_NOT_VERIFIED = "EMAIL_NOT_VERIFIED"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    ALREADY_VERIFIED = "ALREADY_VERIFIED"
    NO_TOKEN = "NO_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    RESEND_COOLDOWN = "RESEND_COOLDOWN"
    RESET_PENDING = "RESET_PENDING"
    RESET_TOKEN_INVALID = "RESET_TOKEN_INVALID"
    RATE_LIMITED = "RATE_LIMITED"
    DELIVERY_FAILED = "DELIVERY_FAILED"
    STORAGE_ERROR = "STORAGE_ERROR"


class VerificationCode(str, Enum):
    VERIFICATION_SUCCESS = "VERIFICATION_SUCCESS"
    ALREADY_VERIFIED = "ALREADY_VERIFIED"


@dataclass
class Failure:
    """A rejected operation. ``message`` is safe to show to the caller."""

    code: ErrorCode
    message: str
    status_code: int = 400
    retry_after_minutes: int | None = None
    email: str | None = None


@dataclass
class Registered:
    account: dict
    next_step: str = EMAIL_VERIFICATION_REQUIRED
    message: str = REGISTRATION_SUCCESS


@dataclass
class LoggedIn:
    account: dict
    token: str
    message: str = "Logged in successfully!"


@dataclass
class Verified:
    code: VerificationCode
    message: str
    account: dict | None = None


@dataclass
class Notice:
    """Success that only carries a message (resend, forgot, reset, change password)."""

    message: str
    email: str | None = None


@dataclass
class Profile:
    account: dict


def _invalid(message: str) -> Failure:
    return Failure(ErrorCode.VALIDATION_ERROR, message, 400)


def _credentials_invalid() -> Failure:
    return Failure(ErrorCode.CREDENTIALS_INVALID, CREDENTIALS_INVALID, 401)


@functools.lru_cache
def _dummy_hash(rounds: int) -> str:
    """A throwaway hash compared against when no account matches, so lookups cost the same."""
    return PasswordHasher(rounds).hash("netmatch-timing-equalizer")


def translate_storage_errors(method):
    """Turn gateway failures into a Failure; the detail goes to the log only."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except AccountNotFoundError as exc:
            logger.warning("%s: account disappeared: %s", method.__name__, exc)
            return Failure(ErrorCode.USER_NOT_FOUND, "User not found", 404)
        except AccountStoreError as exc:
            logger.error("%s: storage failure: %s", method.__name__, exc)
            return Failure(ErrorCode.STORAGE_ERROR, INTERNAL_ERROR_MESSAGE, 500)

    return wrapper


class AccountService:
    """Orchestrates the account lifecycle flows."""

    def __init__(
        self,
        settings: Settings,
        store: AccountStore,
        notifier: Notifier,
        sessions: SessionService,
        hasher: PasswordHasher | None = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.settings = settings
        self.store = store
        self.notifier = notifier
        self.sessions = sessions
        self.hasher = hasher or PasswordHasher(settings.BCRYPT_ROUNDS)
        self.clock = clock

    # ------------------------------------------------------------------ registration

    @translate_storage_errors
    def register(self, email: str, password: str, profile: dict | None = None) -> Registered | Failure:
        """Create an unverified account and send its verification link.

        If the link cannot be delivered the account is deleted again, so no
        unreachable account is left behind.
        """
        email_check = validate_email(email)
        if not email_check.is_valid:
            return _invalid(email_check.error)
        password_check = validate_password(password)
        if not password_check.is_valid:
            return _invalid(password_check.error)
        normalized = email_check.value
        profile_fields = sanitize_profile(profile or {})

        existing = self.store.find_by_email(normalized)
        if existing is not None:
            return self._email_exists(existing)

        password_hash = self.hasher.hash(password)
        now = self.clock()
        token = issue_token(self.settings.VERIFICATION_TOKEN_BYTES, self.settings.VERIFICATION_TOKEN_TTL_HOURS, now)
        try:
            account = self.store.create(
                email=normalized,
                password_hash=password_hash,
                email_verified=False,
                verification_token=token.value,
                verification_token_expiry=token.expires_at,
                last_verification_sent=now,
                **profile_fields,
            )
        except EmailTakenError:
            # Lost a race with a concurrent registration of the same address.
            return Failure(ErrorCode.EMAIL_EXISTS_UNVERIFIED, EMAIL_EXISTS_UNVERIFIED, 409)

        if not self._deliver(self.notifier.send_verification, normalized, token.value, {"city": account.city}):
            self._delete_unreachable_account(account.id)
            return Failure(ErrorCode.DELIVERY_FAILED, DELIVERY_FAILED_MESSAGE, 500)

        logger.info("Registered account %s", account.id)
        return Registered(account=account.public_fields())

    def _email_exists(self, account: Account) -> Failure:
        if account.email_verified:
            return Failure(ErrorCode.EMAIL_EXISTS_VERIFIED, EMAIL_EXISTS_VERIFIED, 409)
        return Failure(ErrorCode.EMAIL_EXISTS_UNVERIFIED, EMAIL_EXISTS_UNVERIFIED, 409)

    def _delete_unreachable_account(self, account_id: int) -> None:
        try:
            self.store.delete(account_id)
        except AccountStoreError:
            logger.exception("Could not delete account %s after failed verification email", account_id)
        else:
            logger.warning("Deleted account %s: verification email could not be sent", account_id)

    # ------------------------------------------------------------------ login

    @translate_storage_errors
    def login(self, email: str, password: str) -> LoggedIn | Failure:
        """Authenticate and issue a session credential.

        Unknown emails and wrong passwords share one message. A locked account
        is rejected before its password is compared.
        """
        email_check = check_email_format(email)
        if not email_check.is_valid:
            return _invalid(email_check.error)
        if not password:
            return _invalid(PASSWORD_REQUIRED)

        account = self.store.find_by_email(email_check.value)
        if account is None:
            self.hasher.verify(password, _dummy_hash(self.hasher.rounds))
            return _credentials_invalid()

        now = self.clock()
        if account.lockout_until is not None and account.lockout_until > now:
            minutes = minutes_until(account.lockout_until, now)
            return Failure(
                ErrorCode.ACCOUNT_LOCKED,
                f"Account temporarily locked. Try again in {minutes} minutes.",
                423,
                retry_after_minutes=minutes,
            )

        if not self.hasher.verify(password, account.password_hash):
            return self._record_failed_login(account, now)

        if not account.email_verified:
            return Failure(ErrorCode.EMAIL_NOT_VERIFIED, EMAIL_NOT_VERIFIED, 403, email=account.email)

        account = self.store.update(account.id, login_attempts=0, lockout_until=None, last_login_at=now)
        token = self.sessions.issue(account.id, account.email, account.email_verified, account.is_admin)
        logger.info("Account %s logged in", account.id)
        return LoggedIn(account=account.public_fields(), token=token)

    def _record_failed_login(self, account: Account, now: datetime) -> Failure:
        max_attempts = self.settings.MAX_LOGIN_ATTEMPTS
        lockout_minutes = self.settings.LOCKOUT_MINUTES
        account = self.store.record_failed_login(account.id, max_attempts, now + timedelta(minutes=lockout_minutes))
        if account.login_attempts >= max_attempts and account.lockout_until is not None and account.lockout_until > now:
            logger.warning("Account %s locked after %d failed logins", account.id, account.login_attempts)
            return Failure(
                ErrorCode.ACCOUNT_LOCKED,
                f"Too many failed attempts. Account locked for {lockout_minutes} minutes.",
                423,
                retry_after_minutes=lockout_minutes,
            )
        return _credentials_invalid()

    # ------------------------------------------------------------------ email verification

    @translate_storage_errors
    def verify_email(self, token: str | None, email: str | None) -> Verified | Failure:
        """Consume a verification token.

        Replaying a link for an already verified account succeeds. An expired
        token is cleared as part of the rejection; a wrong token leaves the
        stored one untouched.
        """
        if not token or not email:
            return Failure(ErrorCode.MISSING_PARAMS, "Token and email are required", 400)

        account = self.store.find_by_email(normalize_email(email))
        if account is None:
            return Failure(ErrorCode.USER_NOT_FOUND, "User not found", 404)
        if account.email_verified:
            return Verified(VerificationCode.ALREADY_VERIFIED, ALREADY_VERIFIED_MESSAGE)

        stored_token = account.verification_token
        if not stored_token:
            return Failure(ErrorCode.NO_TOKEN, "No verification token found. Request a new link.", 400)

        now = self.clock()
        if is_expired(account.verification_token_expiry, now):
            self.store.update_if(
                account.id,
                {"verification_token": stored_token},
                verification_token=None,
                verification_token_expiry=None,
            )
            return Failure(ErrorCode.TOKEN_EXPIRED, "Verification link expired. Request a new link.", 400)

        if not tokens_match(token, stored_token):
            return Failure(ErrorCode.INVALID_TOKEN, "Invalid verification token", 400)

        verified = self.store.update_if(
            account.id,
            {"verification_token": stored_token, "email_verified": False},
            email_verified=True,
            verification_token=None,
            verification_token_expiry=None,
        )
        if verified is None:
            current = self.store.get(account.id)
            if current is not None and current.email_verified:
                return Verified(VerificationCode.ALREADY_VERIFIED, ALREADY_VERIFIED_MESSAGE)
            return Failure(ErrorCode.INVALID_TOKEN, "Invalid verification token", 400)

        logger.info("Account %s verified its email", verified.id)
        self._deliver(self.notifier.send_welcome, verified.email, {"city": verified.city})
        return Verified(VerificationCode.VERIFICATION_SUCCESS, VERIFICATION_SUCCESS_MESSAGE, verified.public_fields())

    # ------------------------------------------------------------------ resend verification

    @translate_storage_errors
    def resend_verification(self, email: str) -> Notice | Failure:
        """Rotate the verification token and send a fresh link.

        A failed send does not undo the rotation: the new link stays valid.
        """
        email_check = validate_email(email)
        if not email_check.is_valid:
            return _invalid(email_check.error)
        normalized = email_check.value

        account = self.store.find_by_email(normalized)
        if account is None:
            return Failure(ErrorCode.USER_NOT_FOUND, "Account not found. Check the email address you entered.", 404)
        if account.email_verified:
            return Failure(ErrorCode.ALREADY_VERIFIED, "Email already verified! You can log in normally.", 400)

        now = self.clock()
        cooldown = timedelta(minutes=self.settings.RESEND_COOLDOWN_MINUTES)
        if account.last_verification_sent is not None and account.last_verification_sent + cooldown > now:
            minutes = minutes_until(account.last_verification_sent + cooldown, now)
            return Failure(
                ErrorCode.RESEND_COOLDOWN,
                f"Please wait {minutes} minutes before requesting a new link.",
                429,
                retry_after_minutes=minutes,
            )

        token = issue_token(self.settings.VERIFICATION_TOKEN_BYTES, self.settings.VERIFICATION_TOKEN_TTL_HOURS, now)
        account = self.store.update(
            account.id,
            verification_token=token.value,
            verification_token_expiry=token.expires_at,
            last_verification_sent=now,
        )
        if not self._deliver(self.notifier.send_verification, normalized, token.value, {"city": account.city}):
            return Failure(ErrorCode.DELIVERY_FAILED, DELIVERY_FAILED_MESSAGE, 500)

        return Notice("Verification email sent! Check your inbox.", email=normalized)

    # ------------------------------------------------------------------ password reset

    @translate_storage_errors
    def forgot_password(self, email: str) -> Notice | Failure:
        """Start a password reset.

        The same notice is returned whether or not the account exists. A still
        valid reset token blocks a new request until it expires.
        """
        email_check = check_email_format(email)
        if not email_check.is_valid:
            return _invalid(email_check.error)
        normalized = email_check.value
        generic = Notice(FORGOT_PASSWORD_MESSAGE)

        account = self.store.find_by_email(normalized)
        if account is None:
            logger.info("Password reset requested for an unknown email")
            return generic
        if not account.email_verified:
            logger.info("Password reset requested for unverified account %s", account.id)
            return generic

        now = self.clock()
        if account.reset_password_token and not is_expired(account.reset_password_token_expiry, now):
            minutes = minutes_until(account.reset_password_token_expiry, now)
            return Failure(
                ErrorCode.RESET_PENDING,
                f"A reset was already requested. Try again in {minutes} minutes or check your email.",
                429,
                retry_after_minutes=minutes,
            )

        token = issue_token(self.settings.RESET_TOKEN_BYTES, self.settings.RESET_TOKEN_TTL_HOURS, now)
        self.store.update(account.id, reset_password_token=token.value, reset_password_token_expiry=token.expires_at)

        if not self._deliver(self.notifier.send_password_reset, normalized, token.value):
            self._withdraw_reset_token(account.id, token.value)
            return Failure(ErrorCode.DELIVERY_FAILED, DELIVERY_FAILED_MESSAGE, 500)

        logger.info("Password reset requested for account %s", account.id)
        return generic

    def _withdraw_reset_token(self, account_id: int, token: str) -> None:
        try:
            self.store.update_if(
                account_id,
                {"reset_password_token": token},
                reset_password_token=None,
                reset_password_token_expiry=None,
            )
        except AccountStoreError:
            logger.exception("Could not clear reset token of account %s after failed email", account_id)

    @translate_storage_errors
    def reset_password(
        self, token: str | None, email: str | None, password: str | None, confirm_password: str | None
    ) -> Notice | Failure:
        """Set a new password with a reset token.

        Wrong and expired tokens produce the same error.
        """
        if not token or not email or not password or not confirm_password:
            return Failure(ErrorCode.MISSING_PARAMS, "All fields are required", 400)
        if password != confirm_password:
            return Failure(ErrorCode.PASSWORD_MISMATCH, "Passwords do not match", 400)
        password_check = validate_reset_password(password)
        if not password_check.is_valid:
            return _invalid(password_check.error)
        email_check = check_email_format(email)
        if not email_check.is_valid:
            return _invalid(email_check.error)

        password_hash = self.hasher.hash(password)
        account = self.store.consume_reset_token(email_check.value, token, password_hash, self.clock())
        if account is None:
            logger.info("Rejected password reset with an invalid or expired token")
            return Failure(
                ErrorCode.RESET_TOKEN_INVALID,
                "Invalid or expired token. Request a new password reset.",
                400,
            )

        logger.info("Password reset completed for account %s", account.id)
        return Notice("Password updated. You can now log in.")

    # ------------------------------------------------------------------ authenticated account

    @translate_storage_errors
    def get_profile(self, account_id: int) -> Profile | Failure:
        account = self.store.get(account_id)
        if account is None:
            return Failure(ErrorCode.USER_NOT_FOUND, "User not found", 404)
        return Profile(account=account.public_fields())

    @translate_storage_errors
    def change_password(self, account_id: int, current_password: str, new_password: str) -> Notice | Failure:
        """Replace the password of a signed-in account after re-checking the current one."""
        if not current_password or not new_password:
            return Failure(ErrorCode.MISSING_PARAMS, "Current and new password are required", 400)
        account = self.store.get(account_id)
        if account is None:
            return Failure(ErrorCode.USER_NOT_FOUND, "User not found", 404)
        if not self.hasher.verify(current_password, account.password_hash):
            return Failure(ErrorCode.CREDENTIALS_INVALID, "Current password is incorrect", 400)
        password_check = validate_password(new_password)
        if not password_check.is_valid:
            return _invalid(password_check.error)

        self.store.update(account.id, password_hash=self.hasher.hash(new_password))
        logger.info("Account %s changed its password", account.id)
        return Notice("Password changed successfully.")

    # ------------------------------------------------------------------ helpers

    def _deliver(self, send: Callable[..., bool], *args) -> bool:
        """Call a notifier method; a False return and an exception both count as failure."""
        try:
            delivered = bool(send(*args))
        except Exception:
            logger.exception("Notification %s raised", getattr(send, "__name__", send))
            return False
        if not delivered:
            logger.error("Notification %s was not delivered", getattr(send, "__name__", send))
        return delivered
