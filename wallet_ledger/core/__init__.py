"""Core module - configuration, security, and exceptions."""

from wallet_ledger.core.config import Settings, get_settings
from wallet_ledger.core.exceptions import (
    AccountNotFoundError,
    BalanceIntegrityError,
    InsufficientBalanceError,
    InvalidStateError,
    NegativeBalanceGuardError,
    StorageFailure,
    TransactionNotFoundError,
    ValidationError,
    WalletError,
)
from wallet_ledger.core.security import sign_payload, verify_signature

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Security
    "sign_payload",
    "verify_signature",
    # Exceptions
    "WalletError",
    "ValidationError",
    "AccountNotFoundError",
    "TransactionNotFoundError",
    "InsufficientBalanceError",
    "InvalidStateError",
    "NegativeBalanceGuardError",
    "StorageFailure",
    "BalanceIntegrityError",
]
