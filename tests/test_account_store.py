"""Tests for the account store's single-statement mutations."""

from datetime import datetime, timedelta

import pytest

from netmatch.services.account_store import AccountNotFoundError, AccountStore, EmailTakenError

NOW = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture(name="account")
def account_fixture(store: AccountStore):
    return store.create(email="a@b.com", password_hash="$2b$04$hash", email_verified=False)


class TestCreate:
    def test_defaults(self, account):
        assert account.id is not None
        assert account.login_attempts == 0
        assert account.is_available is True
        assert account.is_admin is False
        assert account.created_at is not None

    def test_duplicate_email(self, store: AccountStore, account):
        with pytest.raises(EmailTakenError):
            store.create(email="a@b.com", password_hash="$2b$04$other")
        assert store.find_by_email("a@b.com").id == account.id


class TestUpdates:
    def test_update_missing_account(self, store: AccountStore):
        with pytest.raises(AccountNotFoundError):
            store.update(9999, city="Roma")

    def test_update_if_matches(self, store: AccountStore, account):
        store.update(account.id, verification_token="abc")
        updated = store.update_if(account.id, {"verification_token": "abc"}, verification_token=None)
        assert updated is not None
        assert updated.verification_token is None

    def test_update_if_stale_expectation(self, store: AccountStore, account):
        """A write guarded by a value that has since changed is not applied."""
        store.update(account.id, verification_token="new")
        assert store.update_if(account.id, {"verification_token": "old"}, email_verified=True) is None
        assert store.get(account.id).email_verified is False


class TestFailedLogins:
    def test_counter_increments_and_locks_at_threshold(self, store: AccountStore, account):
        lockout = NOW + timedelta(minutes=15)
        for expected in range(1, 5):
            updated = store.record_failed_login(account.id, 5, lockout)
            assert updated.login_attempts == expected
            assert updated.lockout_until is None
        updated = store.record_failed_login(account.id, 5, lockout)
        assert updated.login_attempts == 5
        assert updated.lockout_until == lockout

    def test_increments_from_stored_value(self, store: AccountStore, account):
        """The increment reads the row, not the caller's copy of it."""
        store.update(account.id, login_attempts=3)
        updated = store.record_failed_login(account.id, 5, NOW)
        assert updated.login_attempts == 4

    def test_missing_account(self, store: AccountStore):
        with pytest.raises(AccountNotFoundError):
            store.record_failed_login(9999, 5, NOW)


class TestConsumeResetToken:
    def _with_token(self, store: AccountStore, account, expiry: datetime):
        store.update(
            account.id,
            reset_password_token="f" * 32,
            reset_password_token_expiry=expiry,
            login_attempts=5,
            lockout_until=NOW + timedelta(minutes=5),
        )

    def test_consumes_valid_token(self, store: AccountStore, account):
        self._with_token(store, account, NOW + timedelta(minutes=30))
        updated = store.consume_reset_token("a@b.com", "f" * 32, "$2b$04$new", NOW)
        assert updated.password_hash == "$2b$04$new"
        assert updated.reset_password_token is None
        assert updated.reset_password_token_expiry is None
        assert updated.login_attempts == 0
        assert updated.lockout_until is None

    def test_second_use_fails(self, store: AccountStore, account):
        self._with_token(store, account, NOW + timedelta(minutes=30))
        assert store.consume_reset_token("a@b.com", "f" * 32, "$2b$04$new", NOW) is not None
        assert store.consume_reset_token("a@b.com", "f" * 32, "$2b$04$again", NOW) is None
        assert store.find_by_email("a@b.com").password_hash == "$2b$04$new"

    def test_expired_or_wrong_token(self, store: AccountStore, account):
        self._with_token(store, account, NOW - timedelta(seconds=1))
        assert store.consume_reset_token("a@b.com", "f" * 32, "$2b$04$new", NOW) is None
        assert store.consume_reset_token("a@b.com", "e" * 32, "$2b$04$new", NOW - timedelta(minutes=1)) is None
        assert store.find_by_email("a@b.com").password_hash == "$2b$04$hash"


class TestDelete:
    def test_delete(self, store: AccountStore, account):
        store.delete(account.id)
        assert store.find_by_email("a@b.com") is None
