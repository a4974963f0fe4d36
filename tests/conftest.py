"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from netmatch.config import Settings, get_settings
from netmatch.database import Base, get_db
from netmatch.models.account import Account  # noqa: F401
from netmatch.rate_limit import RateLimiter, get_rate_limiter
from netmatch.services.account_store import AccountStore
from netmatch.services.auth import AccountService
from netmatch.services.notifications import get_notifier
from netmatch.services.session import SessionService, get_session_service

TEST_SECRET = "test-signing-secret"


class RecordingNotifier:
    """Notifier double that records messages and can be told to fail."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str | None]] = []
        self.failing: set[str] = set()

    def send_verification(self, email: str, token: str, context: dict | None = None) -> bool:
        self.sent.append(("verification", email, token))
        return "verification" not in self.failing

    def send_welcome(self, email: str, context: dict | None = None) -> bool:
        self.sent.append(("welcome", email, None))
        return "welcome" not in self.failing

    def send_password_reset(self, email: str, token: str) -> bool:
        self.sent.append(("reset", email, token))
        return "reset" not in self.failing

    def last(self, kind: str) -> tuple[str, str, str | None] | None:
        for message in reversed(self.sent):
            if message[0] == kind:
                return message
        return None


class FakeClock:
    """Controllable replacement for datetime.utcnow."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


@pytest.fixture(name="settings")
def settings_fixture():
    """Settings with a fixed secret and a cheap hash cost."""
    settings = Settings()
    settings.JWT_SECRET_KEY = TEST_SECRET
    settings.BCRYPT_ROUNDS = 4
    return settings


@pytest.fixture(name="db_session")
def db_session_fixture():
    """Create an in-memory SQLite database for tests."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    testing_session_local = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="notifier")
def notifier_fixture():
    return RecordingNotifier()


@pytest.fixture(name="clock")
def clock_fixture():
    return FakeClock()


@pytest.fixture(name="store")
def store_fixture(db_session: Session):
    return AccountStore(db_session)


@pytest.fixture(name="service")
def service_fixture(settings: Settings, store: AccountStore, notifier: RecordingNotifier, clock: FakeClock):
    """Account service wired to the test database, notifier double and fake clock."""
    return AccountService(settings, store, notifier, SessionService(settings), clock=clock)


@pytest.fixture(name="client")
def client_fixture(db_session: Session, notifier: RecordingNotifier, monkeypatch):
    """Test client with overridden DB, notifier and session dependencies, and fresh rate-limit counters."""
    from main import app
    from netmatch.rate_limit import limiter

    monkeypatch.setattr(get_settings(), "BCRYPT_ROUNDS", 4)
    sessions = SessionService(get_settings())
    rate_limiter = RateLimiter("memory://")

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_session_service] = lambda: sessions
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter
    limiter.enabled = False
    with TestClient(app) as c:
        c.rate_limiter = rate_limiter
        c.sessions = sessions
        yield c
    limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture(name="verified_account")
def verified_account_fixture(service: AccountService, store: AccountStore, notifier: RecordingNotifier):
    """Register and verify ``player@tennisclub.it`` / ``Serve4Ace``."""
    result = service.register("player@tennisclub.it", "Serve4Ace", {"city": "Milano"})
    _, email, token = notifier.last("verification")
    service.verify_email(token, email)
    notifier.sent.clear()
    return store.find_by_email(result.account["email"])
