"""Wallet Ledger Tasks Module."""

from wallet_ledger.tasks.celery_app import celery_app
from wallet_ledger.tasks.reconciliation import reconcile_balances

__all__ = [
    "celery_app",
    "reconcile_balances",
]
