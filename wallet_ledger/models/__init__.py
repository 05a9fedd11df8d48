"""Models module - SQLModel database entities."""

from wallet_ledger.models.user import User, UserRole
from wallet_ledger.models.wallet import (
    CREDIT_TYPES,
    DEBIT_TYPES,
    TransactionStatus,
    TransactionType,
    WalletTransaction,
    generate_transaction_no,
    validate_balance_change,
)

__all__ = [
    # User
    "User",
    "UserRole",
    # Wallet
    "WalletTransaction",
    "TransactionType",
    "TransactionStatus",
    "CREDIT_TYPES",
    "DEBIT_TYPES",
    "generate_transaction_no",
    "validate_balance_change",
]
