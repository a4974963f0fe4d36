"""Account store: the only code allowed to mutate Account rows.

Every multi-step mutation the lifecycle service needs is a single UPDATE
statement, so concurrent requests against one account cannot lose updates.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import case, delete, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from netmatch.models.account import Account


class AccountStoreError(Exception):
    """Storage failure. The message is for logs only."""


class EmailTakenError(AccountStoreError):
    """An account with this email already exists."""


class AccountNotFoundError(AccountStoreError):
    """The account row no longer exists."""


class AccountStore:
    """SQLAlchemy-backed account gateway bound to one session."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def find_by_email(self, email: str) -> Account | None:
        """Look up an account by its normalized email."""
        try:
            return self.db.query(Account).filter(Account.email == email).first()
        except SQLAlchemyError as exc:
            raise AccountStoreError(f"find_by_email failed: {exc}") from exc

    def get(self, account_id: int) -> Account | None:
        try:
            return self.db.get(Account, account_id)
        except SQLAlchemyError as exc:
            raise AccountStoreError(f"get failed: {exc}") from exc

    def create(self, **fields: Any) -> Account:
        """Insert a new account. Raises EmailTakenError on a duplicate email."""
        account = Account(**fields)
        self.db.add(account)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise EmailTakenError(f"email already registered: {fields.get('email')}") from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise AccountStoreError(f"create failed: {exc}") from exc
        self.db.refresh(account)
        return account

    def update(self, account_id: int, **values: Any) -> Account:
        """Apply ``values`` in one UPDATE. Raises AccountNotFoundError if the row vanished."""
        account = self.update_if(account_id, {}, **values)
        if account is None:
            raise AccountNotFoundError(f"account {account_id} not found")
        return account

    def update_if(self, account_id: int, expected: dict[str, Any], **values: Any) -> Account | None:
        """Compare-and-set update.

        The row is only written when every column in ``expected`` still holds
        the given value. Returns the refreshed account, or None when nothing
        matched.
        """
        conditions = [Account.id == account_id]
        conditions.extend(getattr(Account, column) == value for column, value in expected.items())
        stmt = update(Account).where(*conditions).values(**values).execution_options(synchronize_session=False)
        return self._execute_update(stmt, account_id)

    def record_failed_login(self, account_id: int, max_attempts: int, lockout_until: datetime) -> Account:
        """Increment the failed-login counter and lock the account once it reaches ``max_attempts``.

        Both columns are computed from the row's current values inside the
        same statement.
        """
        stmt = (
            update(Account)
            .where(Account.id == account_id)
            .values(
                login_attempts=Account.login_attempts + 1,
                lockout_until=case(
                    (Account.login_attempts + 1 >= max_attempts, lockout_until),
                    else_=Account.lockout_until,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        account = self._execute_update(stmt, account_id)
        if account is None:
            raise AccountNotFoundError(f"account {account_id} not found")
        return account

    def consume_reset_token(self, email: str, token: str, password_hash: str, now: datetime) -> Account | None:
        """Swap the password if ``token`` is the account's current, unexpired reset token.

        The match and the write happen in one statement; the token is cleared
        and lockout state reset alongside the new hash. Returns None when no
        account matched.
        """
        stmt = (
            update(Account)
            .where(
                Account.email == email,
                Account.reset_password_token == token,
                Account.reset_password_token_expiry > now,
            )
            .values(
                password_hash=password_hash,
                reset_password_token=None,
                reset_password_token_expiry=None,
                login_attempts=0,
                lockout_until=None,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
            if result.rowcount == 0:
                self.db.rollback()
                return None
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise AccountStoreError(f"consume_reset_token failed: {exc}") from exc
        return self.find_by_email(email)

    def delete(self, account_id: int) -> None:
        try:
            self.db.execute(delete(Account).where(Account.id == account_id))
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise AccountStoreError(f"delete failed: {exc}") from exc

    def _execute_update(self, stmt, account_id: int) -> Account | None:
        try:
            result = self.db.execute(stmt)
            if result.rowcount == 0:
                self.db.rollback()
                return None
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise AccountStoreError(f"update of account {account_id} failed: {exc}") from exc
        account = self.db.get(Account, account_id, populate_existing=True)
        if account is None:
            raise AccountNotFoundError(f"account {account_id} not found")
        return account
