"""Wallet Ledger Service - User model.

Users are registered by the ordering platform; this service owns only the
wallet columns (``wallet_balance`` and ``wallet_version``), which are written
exclusively through the ledger store.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from wallet_ledger.utils.helpers import utc_now


class UserRole(str, Enum):
    """User roles for access control."""

    ADMIN = "admin"
    CUSTOMER = "customer"


class User(SQLModel, table=True):
    """User model.

    Attributes:
        id: Auto-increment primary key
        name: Display name
        email: Email address (indexed)
        phone: Phone number (indexed, used by admin search)
        role: User role for RBAC
        is_active: Account status
        tier: Loyalty tier label
        total_orders: Number of completed orders
        total_spent: Lifetime order spend

        # Wallet fields (owned by the ledger store)
        wallet_balance: Current non-negative balance
        wallet_version: Incremented on every balance write (optimistic concurrency)
    """

    __tablename__ = "users"
    __table_args__ = (
        sa.CheckConstraint("wallet_balance >= 0", name="ck_users_wallet_balance_non_negative"),
    )

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(max_length=255)
    email: str | None = Field(default=None, max_length=255, index=True)
    phone: str | None = Field(default=None, max_length=32, index=True)
    role: UserRole = Field(default=UserRole.CUSTOMER)
    is_active: bool = Field(default=True)

    tier: str | None = Field(default=None, max_length=32)
    total_orders: int = Field(default=0)
    total_spent: Decimal = Field(
        default=Decimal("0"),
        sa_column=sa.Column(sa.DECIMAL(32, 8), nullable=False, default=Decimal("0")),
    )

    wallet_balance: Decimal = Field(
        default=Decimal("0"),
        sa_column=sa.Column(sa.DECIMAL(32, 8), nullable=False, default=Decimal("0")),
    )
    wallet_version: int = Field(default=0)

    # Naive UTC, see utc_now()
    created_at: datetime = Field(default_factory=utc_now, sa_type=sa.DateTime)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=sa.DateTime)
