"""Account model."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from netmatch.database import Base


class Account(Base):
    """A registered player account.

    ``email`` is stored normalized (trimmed, lowercase). A verified account
    never carries a verification token.
    """

    __tablename__ = "account"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(254), unique=True, nullable=False, index=True)
    password_hash = Column(String(128), nullable=False)

    # Email verification
    email_verified = Column(Boolean, nullable=False, default=False)
    verification_token = Column(String(128), nullable=True)
    verification_token_expiry = Column(DateTime, nullable=True)
    last_verification_sent = Column(DateTime, nullable=True)

    # Password reset
    reset_password_token = Column(String(64), nullable=True)
    reset_password_token_expiry = Column(DateTime, nullable=True)

    # Brute-force protection
    login_attempts = Column(Integer, nullable=False, default=0)
    lockout_until = Column(DateTime, nullable=True)
    last_login_at = Column(DateTime, nullable=True)

    # Profile
    city = Column(String(100), nullable=True)
    skill_level = Column(String(50), nullable=True)
    phone = Column(String(20), nullable=True)
    is_available = Column(Boolean, nullable=False, default=True)
    is_admin = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def public_fields(self) -> dict:
        """Fields safe to return to the account holder (no hash, no tokens)."""
        return {
            "id": self.id,
            "email": self.email,
            "email_verified": self.email_verified,
            "city": self.city,
            "skill_level": self.skill_level,
            "phone": self.phone,
            "is_available": self.is_available,
            "is_admin": self.is_admin,
            "created_at": self.created_at,
        }
