"""Reconciliation Service - Out-of-band balance audit.

An account is consistent when its balance is explained by its ledger:

- the signed deltas of all applied transactions sum to the balance
- the most recently applied transaction ends at the balance
- every applied transaction starts where the previous one ended
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from wallet_ledger.core.exceptions import AccountNotFoundError
from wallet_ledger.store.base import AccountLedger, LedgerStore

logger = logging.getLogger(__name__)


@dataclass
class BalanceDiscrepancy:
    """Account whose balance is not explained by its ledger."""

    user_id: int
    balance: Decimal
    last_balance_after: Decimal | None
    ledger_sum: Decimal
    reasons: list[str] = field(default_factory=list)


@dataclass
class ReconciliationReport:
    """Result of one audit run."""

    accounts_checked: int
    discrepancies: list[BalanceDiscrepancy]


def check_ledger(ledger: AccountLedger) -> BalanceDiscrepancy | None:
    """Compare an account's balance against its applied transactions."""
    reasons: list[str] = []
    ledger_sum = Decimal("0")
    previous_after: Decimal | None = None

    for txn in ledger.transactions:
        if previous_after is not None and txn.balance_before != previous_after:
            reasons.append(
                f"{txn.transaction_no} starts at {txn.balance_before}, "
                f"previous transaction ended at {previous_after}"
            )
        ledger_sum += txn.balance_delta
        previous_after = txn.balance_after

    if ledger_sum != ledger.balance:
        reasons.append(f"balance {ledger.balance} != ledger sum {ledger_sum}")
    if previous_after is not None and previous_after != ledger.balance:
        reasons.append(
            f"balance {ledger.balance} != last balance_after {previous_after}"
        )

    if not reasons:
        return None
    return BalanceDiscrepancy(
        user_id=ledger.user_id,
        balance=ledger.balance,
        last_balance_after=previous_after,
        ledger_sum=ledger_sum,
        reasons=reasons,
    )


class ReconciliationService:
    """Service for auditing balances against the ledger."""

    def __init__(self, store: LedgerStore):
        self.store = store

    async def audit_account(self, user_id: int) -> BalanceDiscrepancy | None:
        """Audit one account.

        Raises:
            AccountNotFoundError: If the account does not exist
        """
        ledger = await self.store.account_ledger(user_id)
        discrepancy = check_ledger(ledger)
        if discrepancy:
            logger.error(
                f"Balance discrepancy for user {user_id}: {'; '.join(discrepancy.reasons)}"
            )
        return discrepancy

    async def audit(self, user_ids: list[int] | None = None) -> ReconciliationReport:
        """Audit the given accounts, or every account."""
        if user_ids is None:
            user_ids = await self.store.account_ids()

        discrepancies: list[BalanceDiscrepancy] = []
        checked = 0
        for user_id in user_ids:
            try:
                discrepancy = await self.audit_account(user_id)
            except AccountNotFoundError:
                logger.warning(f"Skipping reconciliation of unknown user {user_id}")
                continue
            checked += 1
            if discrepancy:
                discrepancies.append(discrepancy)

        logger.info(
            f"Reconciliation checked {checked} accounts, "
            f"found {len(discrepancies)} discrepancies"
        )
        return ReconciliationReport(accounts_checked=checked, discrepancies=discrepancies)
