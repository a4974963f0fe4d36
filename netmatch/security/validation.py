"""Input validation for account flows.

Validators return a ``ValidationOutcome`` instead of raising, so the lifecycle
service can turn a rejection into a ``Failure`` with a user-safe message.
"""

import html
import re
from dataclasses import dataclass

from disposable_email_domains import blocklist as DISPOSABLE_DOMAINS
from email_validator import EmailNotValidError, validate_email as _check_email_syntax

MAX_EMAIL_LENGTH = 254
MIN_PASSWORD_LENGTH = 6
MIN_RESET_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128

COMMON_PASSWORDS = frozenset(
    {
        "password",
        "123456",
        "123456789",
        "qwerty",
        "abc123",
        "password123",
        "111111",
        "123123",
        "admin",
        "letmein",
    }
)

DOMAIN_TYPOS = {
    "gmail.co": "gmail.com",
    "gmai.com": "gmail.com",
    "gmial.com": "gmail.com",
    "yahoo.co": "yahoo.com",
    "hotmai.com": "hotmail.com",
    "hotmial.com": "hotmail.com",
    "outlook.co": "outlook.com",
    "outlok.com": "outlook.com",
}

# Profile field -> maximum stored length
PROFILE_FIELD_LIMITS = {"city": 100, "skill_level": 50, "phone": 20}

EMAIL_REQUIRED = "Email is required"
EMAIL_INVALID_FORMAT = "Invalid email format"
EMAIL_TOO_LONG = "Email is too long"
EMAIL_DISPOSABLE = "Disposable email addresses are not allowed"
PASSWORD_REQUIRED = "Password is required"
PASSWORD_TOO_SHORT = f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
PASSWORD_TOO_LONG = f"Password must be at most {MAX_PASSWORD_LENGTH} characters"
PASSWORD_TOO_COMMON = "Password is too common, please choose a stronger one"


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of a validation. ``value`` holds the normalized input when valid."""

    is_valid: bool
    error: str | None = None
    value: str | None = None


def normalize_email(email: str) -> str:
    """Trim and lowercase. Idempotent."""
    return email.strip().lower()


def check_email_format(email: str | None) -> ValidationOutcome:
    """Normalize and check syntax only.

    Used by flows that look an account up, where domain policy must not lock
    out an existing account.
    """
    if not email or not isinstance(email, str) or not email.strip():
        return ValidationOutcome(False, EMAIL_REQUIRED)
    normalized = normalize_email(email)
    if len(normalized) > MAX_EMAIL_LENGTH:
        return ValidationOutcome(False, EMAIL_TOO_LONG)
    try:
        _check_email_syntax(normalized, check_deliverability=False)
    except EmailNotValidError:
        return ValidationOutcome(False, EMAIL_INVALID_FORMAT)
    return ValidationOutcome(True, value=normalized)


def suggest_domain_correction(domain: str) -> str | None:
    return DOMAIN_TYPOS.get(domain.rstrip("."))


def validate_email(email: str | None) -> ValidationOutcome:
    """Full check for addresses a new account will use.

    A typo suggestion is reported as a failure; the address is never rewritten.
    """
    outcome = check_email_format(email)
    if not outcome.is_valid:
        return outcome
    normalized = outcome.value
    local_part, domain = normalized.rsplit("@", 1)

    if domain in DISPOSABLE_DOMAINS:
        return ValidationOutcome(False, EMAIL_DISPOSABLE)

    suggestion = suggest_domain_correction(domain)
    if suggestion:
        return ValidationOutcome(False, f"Did you mean {local_part}@{suggestion}?")

    return ValidationOutcome(True, value=normalized)


def validate_password(password: str | None) -> ValidationOutcome:
    """Registration policy: 6-128 characters, not on the common-password list."""
    if not password or not isinstance(password, str):
        return ValidationOutcome(False, PASSWORD_REQUIRED)
    if len(password) < MIN_PASSWORD_LENGTH:
        return ValidationOutcome(False, PASSWORD_TOO_SHORT)
    if len(password) > MAX_PASSWORD_LENGTH:
        return ValidationOutcome(False, PASSWORD_TOO_LONG)
    if password.lower() in COMMON_PASSWORDS:
        return ValidationOutcome(False, PASSWORD_TOO_COMMON)
    return ValidationOutcome(True, value=password)


def validate_reset_password(password: str | None) -> ValidationOutcome:
    """Stricter policy for a password chosen during reset.

    At least 8 characters with an uppercase letter, a lowercase letter and a digit.
    """
    if not password or not isinstance(password, str):
        return ValidationOutcome(False, PASSWORD_REQUIRED)
    if len(password) < MIN_RESET_PASSWORD_LENGTH:
        return ValidationOutcome(False, f"Password must be at least {MIN_RESET_PASSWORD_LENGTH} characters")
    if len(password) > MAX_PASSWORD_LENGTH:
        return ValidationOutcome(False, PASSWORD_TOO_LONG)
    if not re.search(r"[A-Z]", password) or not re.search(r"[a-z]", password) or not re.search(r"\d", password):
        return ValidationOutcome(False, "Password must contain an uppercase letter, a lowercase letter and a number")
    if password.lower() in COMMON_PASSWORDS:
        return ValidationOutcome(False, PASSWORD_TOO_COMMON)
    return ValidationOutcome(True, value=password)


def sanitize_input(value: str | None, max_length: int = 255) -> str:
    """Trim, escape markup and cap the length of a free-text field.

    The cap applies to the escaped text and never splits an entity.
    """
    if not value or not isinstance(value, str):
        return ""
    escaped = html.escape(value.strip())
    if len(escaped) <= max_length:
        return escaped
    capped = escaped[:max_length]
    amp = capped.rfind("&")
    if amp != -1 and ";" not in capped[amp:]:
        capped = capped[:amp]
    return capped


def sanitize_profile(fields: dict) -> dict:
    """Sanitize known free-text profile fields; unknown keys are dropped. Empty values become None."""
    cleaned = {}
    for name, limit in PROFILE_FIELD_LIMITS.items():
        if name in fields:
            cleaned[name] = sanitize_input(fields[name], limit) or None
    return cleaned
