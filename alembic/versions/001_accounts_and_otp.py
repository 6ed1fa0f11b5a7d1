"""Accounts and one-time code challenges.

Revision ID: 001_accounts_and_otp
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "001_accounts_and_otp"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create accounts and otp_challenges."""
    op.create_table(
        "accounts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("mobile", sa.String(32), nullable=True),
        sa.Column("dob", sa.String(10), nullable=True),
        sa.Column("gender", sa.String(8), server_default="other", nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("role", sa.String(8), server_default="user", nullable=False),
        sa.Column("password_hash", sa.String(256), nullable=False),
        sa.Column("email_verified", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("registration_incomplete", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("email", name="uq_accounts_email"),
        sa.CheckConstraint("role IN ('user', 'admin')", name="ck_accounts_role"),
        sa.CheckConstraint("gender IN ('male', 'female', 'other')", name="ck_accounts_gender"),
    )

    op.create_table(
        "otp_challenges",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("code_hash", sa.String(64), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("superseded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("attempts", sa.Integer(), server_default="0", nullable=False),
    )
    op.create_index("ix_otp_challenges_email", "otp_challenges", ["email"])


def downgrade() -> None:
    """Drop otp_challenges and accounts."""
    op.drop_index("ix_otp_challenges_email", table_name="otp_challenges")
    op.drop_table("otp_challenges")
    op.drop_table("accounts")
