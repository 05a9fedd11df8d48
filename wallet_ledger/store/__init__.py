"""Ledger store module.

Provides the storage abstraction for balances and the transaction log.
"""

from wallet_ledger.store.base import (
    AccountLedger,
    AccountUnit,
    BalanceSummary,
    LedgerStore,
    TypeTotals,
)
from wallet_ledger.store.factory import get_ledger_store
from wallet_ledger.store.memory import InMemoryLedgerStore
from wallet_ledger.store.sql import SQLLedgerStore

__all__ = [
    "LedgerStore",
    "AccountUnit",
    "AccountLedger",
    "BalanceSummary",
    "TypeTotals",
    "InMemoryLedgerStore",
    "SQLLedgerStore",
    "get_ledger_store",
]
