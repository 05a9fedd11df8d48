"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18

Initial database schema for the wallet ledger: users (wallet columns)
and the wallet transaction log.
"""

from collections.abc import Sequence

import sqlalchemy as sa
import sqlmodel

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

TRANSACTION_TYPES = ("TOP_UP", "ORDER_PAYMENT", "REFUND", "BONUS", "DEDUCTION", "REVERSAL")
TRANSACTION_STATUSES = ("PENDING", "COMPLETED", "FAILED", "REVERSED")


def upgrade() -> None:
    """Create initial database schema."""
    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column("email", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
        sa.Column("phone", sqlmodel.sql.sqltypes.AutoString(length=32), nullable=True),
        sa.Column("role", sa.Enum("ADMIN", "CUSTOMER", name="userrole"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("tier", sqlmodel.sql.sqltypes.AutoString(length=32), nullable=True),
        sa.Column("total_orders", sa.Integer(), nullable=False),
        sa.Column("total_spent", sa.DECIMAL(precision=32, scale=8), nullable=False),
        sa.Column("wallet_balance", sa.DECIMAL(precision=32, scale=8), nullable=False),
        sa.Column("wallet_version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("wallet_balance >= 0", name="ck_users_wallet_balance_non_negative"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=False)
    op.create_index(op.f("ix_users_phone"), "users", ["phone"], unique=False)

    # Wallet transactions table
    op.create_table(
        "wallet_transactions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("transaction_no", sqlmodel.sql.sqltypes.AutoString(length=32), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.Enum(*TRANSACTION_TYPES, name="transactiontype"), nullable=False),
        sa.Column(
            "status", sa.Enum(*TRANSACTION_STATUSES, name="transactionstatus"), nullable=False
        ),
        sa.Column("amount", sa.DECIMAL(precision=32, scale=8), nullable=False),
        sa.Column("balance_before", sa.DECIMAL(precision=32, scale=8), nullable=False),
        sa.Column("balance_after", sa.DECIMAL(precision=32, scale=8), nullable=False),
        sa.Column("description", sqlmodel.sql.sqltypes.AutoString(length=500), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column(
            "reference_number", sqlmodel.sql.sqltypes.AutoString(length=64), nullable=True
        ),
        sa.Column("reversed_transaction_id", sa.Integer(), nullable=True),
        sa.Column("reversal_reason", sqlmodel.sql.sqltypes.AutoString(length=500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["reversed_transaction_id"], ["wallet_transactions.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_wallet_transactions_transaction_no"),
        "wallet_transactions",
        ["transaction_no"],
        unique=True,
    )
    op.create_index(
        op.f("ix_wallet_transactions_user_id"), "wallet_transactions", ["user_id"], unique=False
    )
    op.create_index(
        op.f("ix_wallet_transactions_status"), "wallet_transactions", ["status"], unique=False
    )
    op.create_index(
        op.f("ix_wallet_transactions_reference_number"),
        "wallet_transactions",
        ["reference_number"],
        unique=False,
    )
    op.create_index(
        op.f("ix_wallet_transactions_reversed_transaction_id"),
        "wallet_transactions",
        ["reversed_transaction_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_wallet_transactions_created_at"),
        "wallet_transactions",
        ["created_at"],
        unique=False,
    )
    op.create_index(
        op.f("ix_wallet_transactions_completed_at"),
        "wallet_transactions",
        ["completed_at"],
        unique=False,
    )
    op.create_index(
        "ix_wallet_transactions_user_created",
        "wallet_transactions",
        ["user_id", "created_at"],
        unique=False,
    )
    op.create_index(
        "ix_wallet_transactions_user_type", "wallet_transactions", ["user_id", "type"], unique=False
    )
    op.create_index(
        "ix_wallet_transactions_type_created",
        "wallet_transactions",
        ["type", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("wallet_transactions")
    op.drop_table("users")
