"""users, cash_payments and admin_logs

Revision ID: 20261012_000001_cash_payments
Revises:
Create Date: 2026-10-12 00:00:00

"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "20261012_000001_cash_payments"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("full_name", sa.String(length=191), nullable=False),
        sa.Column("email", sa.String(length=191), nullable=True),
        sa.Column("mobile_number", sa.String(length=32), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="user"),
        sa.Column("telegram_id", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("telegram_id"),
    )
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_telegram_id", "users", ["telegram_id"])

    op.create_table(
        "cash_payments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("approved_by", sa.String(length=36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.CheckConstraint("amount > 0", name="ck_cash_payments_amount_positive"),
    )
    op.create_index("ix_cash_payments_user_id", "cash_payments", ["user_id"])
    op.create_index("ix_cash_payments_status", "cash_payments", ["status"])
    op.create_index("ix_cash_payments_created_at", "cash_payments", ["created_at"])

    op.create_table(
        "admin_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("admin_id", sa.String(length=36), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_admin_logs_admin_id", "admin_logs", ["admin_id"])


def downgrade() -> None:
    op.drop_index("ix_admin_logs_admin_id", table_name="admin_logs")
    op.drop_table("admin_logs")
    op.drop_index("ix_cash_payments_created_at", table_name="cash_payments")
    op.drop_index("ix_cash_payments_status", table_name="cash_payments")
    op.drop_index("ix_cash_payments_user_id", table_name="cash_payments")
    op.drop_table("cash_payments")
    op.drop_index("ix_users_telegram_id", table_name="users")
    op.drop_index("ix_users_role", table_name="users")
    op.drop_table("users")
