"""Configuration settings for Netmatch."""

import os
import secrets
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./netmatch.db")

    # Session credentials
    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "")
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    SESSION_TTL_HOURS: int = 24

    # Password hashing (~100ms per hash at 12 rounds)
    BCRYPT_ROUNDS: int = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Tokens
    VERIFICATION_TOKEN_BYTES: int = 32
    VERIFICATION_TOKEN_TTL_HOURS: int = 24
    RESET_TOKEN_BYTES: int = 16
    RESET_TOKEN_TTL_HOURS: int = 1
    RESEND_COOLDOWN_MINUTES: int = 5

    # Brute-force protection
    MAX_LOGIN_ATTEMPTS: int = 5
    LOCKOUT_MINUTES: int = 15

    # Admission control: (requests, window in minutes)
    RATE_LIMIT_STORAGE_URI: str = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")
    REGISTER_RATE: tuple[int, int] = (3, 15)
    LOGIN_RATE: tuple[int, int] = (5, 15)
    VERIFY_RATE: tuple[int, int] = (5, 60)
    RESEND_RATE: tuple[int, int] = (3, 60)
    API_RATE: str = "100 per 15 minutes"

    # Outbound email
    APP_URL: str = os.getenv("APP_URL", "http://localhost:8000").rstrip("/")
    SMTP_HOST: str = os.getenv("SMTP_HOST", "")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "465"))
    SMTP_USER: str = os.getenv("SMTP_USER", "")
    SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
    SMTP_FROM: str = os.getenv("SMTP_FROM", os.getenv("SMTP_USER", ""))

    # Application
    APP_ENV: str = os.getenv("APP_ENV", "development")
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    def __init__(self) -> None:
        self._generated_secret = not self.JWT_SECRET_KEY
        if self._generated_secret:
            self.JWT_SECRET_KEY = secrets.token_urlsafe(32)

    @property
    def smtp_configured(self) -> bool:
        return bool(self.SMTP_HOST and self.SMTP_USER and self.SMTP_PASSWORD and self.SMTP_FROM)

    def validate(self) -> list[str]:
        """Validate settings and return list of warnings."""
        errors = []
        if self._generated_secret:
            errors.append("JWT_SECRET_KEY is not set - using auto-generated key (not persistent across restarts)")
        if not self.smtp_configured:
            errors.append("SMTP is not configured - notification links are written to the log")
        if self.BCRYPT_ROUNDS < 10 and self.APP_ENV == "production":
            errors.append(f"BCRYPT_ROUNDS={self.BCRYPT_ROUNDS} is too low for production")
        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
