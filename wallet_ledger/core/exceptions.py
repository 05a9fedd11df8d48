"""Wallet Ledger Service - Custom exceptions."""

from decimal import Decimal
from typing import Any


class WalletError(Exception):
    """Base exception for all wallet errors."""

    code = "wallet_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(WalletError):
    """Input validation failed. Raised before any I/O."""

    code = "validation_error"


class AccountNotFoundError(ValidationError):
    """Wallet account (user) does not exist."""

    code = "account_not_found"

    def __init__(self, user_id: int | None) -> None:
        super().__init__(f"User {user_id} not found", {"user_id": user_id})


class TransactionNotFoundError(ValidationError):
    """Referenced transaction does not exist."""

    code = "transaction_not_found"


class InsufficientBalanceError(WalletError):
    """Account balance is lower than the requested debit."""

    code = "insufficient_balance"

    def __init__(
        self,
        required: Decimal | None = None,
        available: Decimal | None = None,
        message: str = "Insufficient wallet balance",
    ) -> None:
        details = {}
        if required is not None:
            details["required"] = str(required)
        if available is not None:
            details["available"] = str(available)
        super().__init__(message, details)


class InvalidStateError(WalletError):
    """Operation not permitted for the transaction's current status."""

    code = "invalid_state"


class NegativeBalanceGuardError(WalletError):
    """Reversal would drive the account balance below zero."""

    code = "negative_balance_guard"


class StorageFailure(WalletError):
    """The atomic unit of work could not complete. Safe to retry."""

    code = "storage_failure"


class BalanceIntegrityError(WalletError):
    """A transaction record's balance snapshots do not match its effect."""

    code = "balance_integrity_error"
