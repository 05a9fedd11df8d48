"""Wallet Ledger Service - Wallet transaction model.

Every balance-affecting event is one ``WalletTransaction`` row. Rows are never
deleted; corrections are additional ``reversal`` rows.

Balance snapshot rules:
- credit types (top_up, refund, bonus): balance_after = balance_before + amount
- debit types (order_payment, deduction): balance_after = balance_before - amount
- reversal: the inverse of the reversed transaction's effect
- pending / failed rows carry no effect: balance_after = balance_before
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from wallet_ledger.core.exceptions import BalanceIntegrityError
from wallet_ledger.utils.helpers import timestamped_code, utc_now


class TransactionType(str, Enum):
    """Wallet transaction type."""

    TOP_UP = "top_up"  # gateway top-up
    ORDER_PAYMENT = "order_payment"  # checkout debit
    REFUND = "refund"  # order refund credit
    BONUS = "bonus"  # admin bonus credit
    DEDUCTION = "deduction"  # admin manual debit
    REVERSAL = "reversal"  # compensating entry


class TransactionStatus(str, Enum):
    """Wallet transaction status.

    pending -> completed | failed
    completed -> reversed
    """

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REVERSED = "reversed"


CREDIT_TYPES = frozenset({TransactionType.TOP_UP, TransactionType.REFUND, TransactionType.BONUS})
DEBIT_TYPES = frozenset({TransactionType.ORDER_PAYMENT, TransactionType.DEDUCTION})

# Statuses whose balance snapshots describe an applied effect
EFFECT_STATUSES = frozenset({TransactionStatus.COMPLETED, TransactionStatus.REVERSED})


def generate_transaction_no() -> str:
    """Generate unique transaction number.

    Format: TXN + epoch millis(13) + random(9)
    Example: TXN1760800000000K3J9QX2MA
    """
    return timestamped_code("TXN")


class WalletTransaction(SQLModel, table=True):
    """Wallet transaction - one immutable (once completed) ledger entry.

    Attributes:
        id: Auto-increment primary key
        transaction_no: Human-presentable unique id
        user_id: Account owner

        type: Transaction type (direction implied, amount is never signed)
        status: pending/completed/failed/reversed
        amount: Strictly positive amount
        balance_before: Balance snapshot before the effect
        balance_after: Balance snapshot after the effect

        description: Human-readable description
        meta: Free-form context (order_id, admin_id, reason, reference_number, notes)
        reference_number: External payment reference (idempotency key for callbacks)

        reversed_transaction_id: Original transaction offset by this reversal
        reversal_reason: Operator reason of the reversal

        created_at: Record creation time
        updated_at: Last status change
        completed_at: When the balance effect was applied
    """

    __tablename__ = "wallet_transactions"
    __table_args__ = (
        sa.Index("ix_wallet_transactions_user_created", "user_id", "created_at"),
        sa.Index("ix_wallet_transactions_user_type", "user_id", "type"),
        sa.Index("ix_wallet_transactions_type_created", "type", "created_at"),
    )

    id: int | None = Field(default=None, primary_key=True)
    transaction_no: str = Field(
        default_factory=generate_transaction_no, max_length=32, unique=True, index=True
    )
    user_id: int = Field(foreign_key="users.id", index=True)

    type: TransactionType = Field(description="Transaction type")
    status: TransactionStatus = Field(default=TransactionStatus.PENDING, index=True)
    amount: Decimal = Field(
        sa_column=sa.Column(sa.DECIMAL(32, 8), nullable=False),
        description="Transaction amount (always positive)",
    )
    balance_before: Decimal = Field(
        sa_column=sa.Column(sa.DECIMAL(32, 8), nullable=False),
        description="Balance before change",
    )
    balance_after: Decimal = Field(
        sa_column=sa.Column(sa.DECIMAL(32, 8), nullable=False),
        description="Balance after change",
    )

    description: str = Field(max_length=500, description="Transaction description")
    meta: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=sa.Column("metadata", sa.JSON, nullable=False, default=dict),
    )
    reference_number: str | None = Field(
        default=None, max_length=64, index=True, description="External payment reference"
    )

    reversed_transaction_id: int | None = Field(
        default=None,
        foreign_key="wallet_transactions.id",
        index=True,
        description="Transaction offset by this reversal",
    )
    reversal_reason: str | None = Field(default=None, max_length=500)

    # Naive UTC, see utc_now()
    created_at: datetime = Field(default_factory=utc_now, sa_type=sa.DateTime, index=True)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=sa.DateTime)
    completed_at: datetime | None = Field(default=None, sa_type=sa.DateTime, index=True)

    @property
    def balance_delta(self) -> Decimal:
        """Signed effect of this record on the balance."""
        return self.balance_after - self.balance_before


def expected_balance_after(
    txn_type: TransactionType,
    balance_before: Decimal,
    amount: Decimal,
) -> Decimal:
    """Balance after applying a credit or debit type."""
    if txn_type in CREDIT_TYPES:
        return balance_before + amount
    if txn_type in DEBIT_TYPES:
        return balance_before - amount
    raise ValueError(f"{txn_type.value} has no fixed direction")


def validate_balance_change(txn: WalletTransaction) -> None:
    """Validate a record's snapshots against its type and status.

    Raises:
        BalanceIntegrityError: If the record would violate conservation
    """
    details = {
        "transaction_no": txn.transaction_no,
        "type": txn.type.value,
        "amount": str(txn.amount),
        "balance_before": str(txn.balance_before),
        "balance_after": str(txn.balance_after),
    }

    if txn.amount is None or txn.amount <= 0:
        raise BalanceIntegrityError("Transaction amount must be positive", details)
    if txn.balance_before < 0 or txn.balance_after < 0:
        raise BalanceIntegrityError("Balance snapshots must be non-negative", details)

    if txn.status not in EFFECT_STATUSES:
        if txn.balance_after != txn.balance_before:
            raise BalanceIntegrityError(
                f"A {txn.status.value} transaction cannot change the balance", details
            )
        return

    if txn.type == TransactionType.REVERSAL:
        if abs(txn.balance_delta) != txn.amount:
            raise BalanceIntegrityError(
                "Balance calculation error: invalid balance_after for reversal", details
            )
        return

    if txn.balance_after != expected_balance_after(txn.type, txn.balance_before, txn.amount):
        kind = "credit" if txn.type in CREDIT_TYPES else "debit"
        raise BalanceIntegrityError(
            f"Balance calculation error: invalid balance_after for {kind} transaction", details
        )
