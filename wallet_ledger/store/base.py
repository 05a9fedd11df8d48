"""Base ledger store interface.

The ledger store owns account balances and the append-only transaction log.
The only way to change a balance is ``LedgerStore.run_atomic``: it gives a
unit of work exclusive read-modify-write access to one account, and persists
the staged balance together with the staged transaction records, or nothing.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TypeVar

from wallet_ledger.core.exceptions import BalanceIntegrityError
from wallet_ledger.models.user import User
from wallet_ledger.models.wallet import (
    TransactionStatus,
    TransactionType,
    WalletTransaction,
    validate_balance_change,
)
from wallet_ledger.schemas.wallet import TransactionQueryParams

T = TypeVar("T")


@dataclass
class TypeTotals:
    """Count and amount sum of one transaction type."""

    count: int = 0
    total_amount: Decimal = Decimal("0")


@dataclass
class BalanceSummary:
    """Aggregate of balances across all accounts."""

    total_balance: Decimal
    users_with_balance: int


@dataclass
class AccountLedger:
    """Balance of one account together with its applied transactions.

    ``transactions`` holds records with an applied effect (completed, reversed)
    ordered by the time the effect was applied.
    """

    user_id: int
    balance: Decimal
    transactions: list[WalletTransaction]


class AccountUnit(ABC):
    """Exclusive access to one account inside ``LedgerStore.run_atomic``.

    The unit exposes the balance as read at the start of the unit of work.
    Work functions compute the change and call ``record`` exactly once;
    the store persists it when the work function returns.
    """

    def __init__(self, user_id: int, balance: Decimal) -> None:
        self.user_id = user_id
        self._balance = balance
        self.staged_balance: Decimal | None = None
        self.staged_records: list[WalletTransaction] = []
        self._recorded = False

    @property
    def balance(self) -> Decimal:
        """Balance at the start of this unit of work."""
        return self._balance

    @abstractmethod
    async def find_transaction(
        self,
        transaction_no: str | None = None,
        reference_number: str | None = None,
    ) -> WalletTransaction | None:
        """Load one of this account's transactions for modification."""
        pass

    def record(self, new_balance: Decimal | None, *records: WalletTransaction) -> None:
        """Stage a balance change and the records that explain it.

        Args:
            new_balance: New balance, or None to leave the balance untouched
            records: New or modified transaction records

        Raises:
            BalanceIntegrityError: If the change is not explained by exactly
                one applied record, or any record violates conservation
        """
        if self._recorded:
            raise RuntimeError("A unit of work can record only one change")

        check_staged_change(self.user_id, self._balance, new_balance, records)

        self.staged_balance = new_balance
        self.staged_records = list(records)
        self._recorded = True


def check_staged_change(
    user_id: int,
    current_balance: Decimal,
    new_balance: Decimal | None,
    records: Sequence[WalletTransaction],
) -> None:
    """Validate a staged change before it becomes durable."""
    if not records:
        raise BalanceIntegrityError("A change must include at least one transaction record")

    for txn in records:
        if txn.user_id != user_id:
            raise BalanceIntegrityError(
                "Transaction belongs to another account",
                {"transaction_no": txn.transaction_no, "user_id": txn.user_id},
            )
        validate_balance_change(txn)

    # Records transitioning to reversed keep their historical snapshots
    applied = [txn for txn in records if txn.status == TransactionStatus.COMPLETED]

    if new_balance is None:
        if applied:
            raise BalanceIntegrityError("Completed transaction staged without a balance change")
        return

    if new_balance < 0:
        raise BalanceIntegrityError(
            "Balance cannot become negative", {"new_balance": str(new_balance)}
        )
    if len(applied) != 1:
        raise BalanceIntegrityError(
            "A balance change must be explained by exactly one completed transaction",
            {"completed_records": len(applied)},
        )

    txn = applied[0]
    if txn.balance_before != current_balance or txn.balance_after != new_balance:
        raise BalanceIntegrityError(
            "Transaction snapshots do not match the balance change",
            {
                "transaction_no": txn.transaction_no,
                "current_balance": str(current_balance),
                "new_balance": str(new_balance),
                "balance_before": str(txn.balance_before),
                "balance_after": str(txn.balance_after),
            },
        )


class LedgerStore(ABC):
    """Abstract base class for ledger stores.

    Implementations must guarantee that two units of work on the same account
    never overlap, and that a unit's staged balance and records are persisted
    together or not at all. Units on different accounts may run in parallel.
    """

    # ============ Atomic Unit of Work ============

    @abstractmethod
    async def run_atomic(
        self,
        user_id: int,
        work: Callable[[AccountUnit], Awaitable[T]],
    ) -> T:
        """Run ``work`` with exclusive access to an account and persist its change.

        ``work`` may be invoked more than once when the store retries after a
        concurrent modification; it must not have side effects outside the unit.

        Raises:
            AccountNotFoundError: If the account does not exist
            StorageFailure: If the unit of work could not complete
            WalletError: Any error raised by ``work`` (nothing is persisted)
        """
        pass

    # ============ Reads (no lock) ============

    @abstractmethod
    async def get_account(self, user_id: int) -> User | None:
        """Get an account by user id."""
        pass

    @abstractmethod
    async def get_balance(self, user_id: int) -> Decimal:
        """Point-in-time balance read.

        Raises:
            AccountNotFoundError: If the account does not exist
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_no: str) -> WalletTransaction | None:
        """Get a transaction by its transaction number."""
        pass

    @abstractmethod
    async def get_transaction_by_reference(
        self, reference_number: str
    ) -> WalletTransaction | None:
        """Get a transaction by external payment reference."""
        pass

    @abstractmethod
    async def list_transactions(
        self,
        user_id: int,
        params: TransactionQueryParams,
    ) -> tuple[list[WalletTransaction], int]:
        """List an account's transactions, newest first.

        Returns:
            Tuple of (page items, total matching count)
        """
        pass

    @abstractmethod
    async def aggregate_by_type(
        self,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        user_id: int | None = None,
        status: TransactionStatus | None = TransactionStatus.COMPLETED,
    ) -> dict[TransactionType, TypeTotals]:
        """Per-type counts and amount sums. ``status=None`` counts every status."""
        pass

    @abstractmethod
    async def balance_summary(self) -> BalanceSummary:
        """Total balance across accounts and number of accounts with positive balance."""
        pass

    @abstractmethod
    async def search_accounts(self, query: str, limit: int = 10) -> list[User]:
        """Case-insensitive substring search on name or phone."""
        pass

    @abstractmethod
    async def account_ids(self) -> list[int]:
        """All account ids, ascending."""
        pass

    @abstractmethod
    async def account_ledger(self, user_id: int) -> AccountLedger:
        """Balance and applied transactions of one account (for reconciliation).

        Raises:
            AccountNotFoundError: If the account does not exist
        """
        pass
