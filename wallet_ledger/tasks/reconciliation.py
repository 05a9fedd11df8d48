"""Wallet balance reconciliation tasks.

Periodically audits every account's balance against its transaction ledger
and logs any account whose balance is not explained by its records.
"""

import asyncio
import logging
import time

from wallet_ledger.core.config import get_settings
from wallet_ledger.services.reconciliation_service import ReconciliationService
from wallet_ledger.store import get_ledger_store
from wallet_ledger.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def run_async(coro):
    """Run async coroutine in sync context for Celery."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(name="wallet.reconcile_balances")
def reconcile_balances(user_ids: list[int] | None = None) -> dict:
    """Audit wallet balances against the transaction ledger.

    Args:
        user_ids: Accounts to audit (all accounts when omitted)

    Returns:
        Dict with the number of audited accounts and the discrepancies found
    """
    return run_async(_reconcile_balances_async(user_ids))


async def _reconcile_balances_async(user_ids: list[int] | None = None) -> dict:
    """Async implementation of reconcile_balances."""
    start_time = time.time()
    logger.info("[reconcile_balances] Starting balance reconciliation")

    try:
        service = ReconciliationService(get_ledger_store())
        report = await service.audit(user_ids)
    finally:
        if get_settings().ledger_backend == "sql":
            # Pooled connections are bound to this task's event loop
            from wallet_ledger.db.engine import close_db

            await close_db()

    elapsed = time.time() - start_time
    logger.info(
        f"[reconcile_balances] Checked {report.accounts_checked} accounts in {elapsed:.2f}s, "
        f"{len(report.discrepancies)} discrepancies"
    )
    return {
        "accounts_checked": report.accounts_checked,
        "discrepancies": [
            {
                "user_id": item.user_id,
                "balance": str(item.balance),
                "last_balance_after": (
                    str(item.last_balance_after) if item.last_balance_after is not None else None
                ),
                "ledger_sum": str(item.ledger_sum),
                "reasons": item.reasons,
            }
            for item in report.discrepancies
        ],
    }
