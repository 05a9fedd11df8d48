"""Balance Reconciliation Script - Audit wallet balances against the ledger.

Usage:
    # Audit every account
    uv run python -m wallet_ledger.scripts.reconcile_balances

    # Audit selected accounts
    uv run python -m wallet_ledger.scripts.reconcile_balances --user-id 12 --user-id 40

    # Exit with status 1 when any discrepancy is found (for cron / CI)
    uv run python -m wallet_ledger.scripts.reconcile_balances --fail-on-discrepancy

Options:
    --user-id: Account to audit (repeatable, default: all accounts)
    --fail-on-discrepancy: Non-zero exit status when discrepancies exist
"""

import argparse
import asyncio
import logging
import sys

from wallet_ledger.core.config import get_settings
from wallet_ledger.core.logging import setup_logging
from wallet_ledger.services.reconciliation_service import ReconciliationService
from wallet_ledger.store import get_ledger_store

logger = logging.getLogger(__name__)


async def main(args: argparse.Namespace) -> int:
    """Main entry point. Returns the number of discrepancies found."""
    try:
        service = ReconciliationService(get_ledger_store())
        report = await service.audit(args.user_id)
    finally:
        if get_settings().ledger_backend == "sql":
            from wallet_ledger.db.engine import close_db

            await close_db()

    print("=" * 60)
    print(f"Accounts checked: {report.accounts_checked}")
    print(f"Discrepancies:    {len(report.discrepancies)}")
    for item in report.discrepancies:
        print(f"  user {item.user_id}: balance={item.balance} ledger_sum={item.ledger_sum}")
        for reason in item.reasons:
            print(f"    - {reason}")
    print("=" * 60)

    return len(report.discrepancies)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Wallet balance reconciliation")
    parser.add_argument(
        "--user-id",
        type=int,
        action="append",
        help="Account to audit (repeatable, default: all accounts)",
    )
    parser.add_argument(
        "--fail-on-discrepancy",
        action="store_true",
        help="Exit with status 1 when discrepancies are found",
    )

    args = parser.parse_args()
    setup_logging(get_settings().log_level)
    found = asyncio.run(main(args))
    if found and args.fail_on_discrepancy:
        sys.exit(1)
