"""Create account table

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "account",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(length=254), nullable=False),
        sa.Column("password_hash", sa.String(length=128), nullable=False),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("verification_token", sa.String(length=128), nullable=True),
        sa.Column("verification_token_expiry", sa.DateTime(), nullable=True),
        sa.Column("last_verification_sent", sa.DateTime(), nullable=True),
        sa.Column("reset_password_token", sa.String(length=64), nullable=True),
        sa.Column("reset_password_token_expiry", sa.DateTime(), nullable=True),
        sa.Column("login_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lockout_until", sa.DateTime(), nullable=True),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("skill_level", sa.String(length=50), nullable=True),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_account_email"), "account", ["email"], unique=True)


def downgrade() -> None:
    op.drop_index(op.f("ix_account_email"), table_name="account")
    op.drop_table("account")
