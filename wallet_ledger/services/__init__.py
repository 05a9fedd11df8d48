"""Wallet Ledger Service Layer.

Business logic services for the wallet ledger.
Each service encapsulates domain-specific operations and can be reused across
API endpoints, Celery tasks and scripts.
"""

from wallet_ledger.services.reconciliation_service import (
    BalanceDiscrepancy,
    ReconciliationReport,
    ReconciliationService,
)
from wallet_ledger.services.topup_service import TopUpService
from wallet_ledger.services.wallet_service import WalletService

__all__ = [
    "WalletService",
    "TopUpService",
    "ReconciliationService",
    "ReconciliationReport",
    "BalanceDiscrepancy",
]
