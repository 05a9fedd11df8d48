"""Ledger store factory.

Provides the store selected by ``settings.ledger_backend``.
"""

import logging
from functools import lru_cache

from wallet_ledger.core.config import get_settings
from wallet_ledger.store.base import LedgerStore

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_ledger_store() -> LedgerStore:
    """Get the process-wide ledger store.

    Uses caching so every request and task shares one store instance
    (the in-memory store keeps its state and locks on the instance).

    Raises:
        ValueError: If the configured backend is not supported
    """
    settings = get_settings()
    backend = settings.ledger_backend

    if backend == "sql":
        from wallet_ledger.db.engine import async_session_factory
        from wallet_ledger.store.sql import SQLLedgerStore

        logger.info("Using SQL ledger store")
        return SQLLedgerStore(async_session_factory, max_retries=settings.ledger_max_retries)
    elif backend == "memory":
        from wallet_ledger.store.memory import InMemoryLedgerStore

        logger.info("Using in-memory ledger store")
        return InMemoryLedgerStore()
    else:
        raise ValueError(f"Unsupported ledger backend: {backend}")
