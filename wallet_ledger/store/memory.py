"""In-process ledger store.

Serializes units of work per account with an ``asyncio.Lock``. State lives in
dictionaries owned by the store; every read returns a copy so callers can
never mutate stored balances or records directly.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from datetime import datetime
from decimal import Decimal

from wallet_ledger.core.exceptions import AccountNotFoundError
from wallet_ledger.models.user import User
from wallet_ledger.models.wallet import (
    EFFECT_STATUSES,
    TransactionStatus,
    TransactionType,
    WalletTransaction,
)
from wallet_ledger.schemas.wallet import TransactionQueryParams
from wallet_ledger.store.base import (
    AccountLedger,
    AccountUnit,
    BalanceSummary,
    LedgerStore,
    T,
    TypeTotals,
)
from wallet_ledger.utils.helpers import utc_now

logger = logging.getLogger(__name__)


def _copy_user(user: User) -> User:
    return User(**user.model_dump())


def _copy_txn(txn: WalletTransaction) -> WalletTransaction:
    data = txn.model_dump()
    data["meta"] = dict(txn.meta or {})
    return WalletTransaction(**data)


class _MemoryAccountUnit(AccountUnit):
    def __init__(self, store: "InMemoryLedgerStore", account: User) -> None:
        super().__init__(account.id, account.wallet_balance)  # type: ignore[arg-type]
        self._store = store

    async def find_transaction(
        self,
        transaction_no: str | None = None,
        reference_number: str | None = None,
    ) -> WalletTransaction | None:
        for txn in self._store._transactions.values():
            if txn.user_id != self.user_id:
                continue
            if transaction_no is not None and txn.transaction_no != transaction_no:
                continue
            if reference_number is not None and txn.reference_number != reference_number:
                continue
            return _copy_txn(txn)
        return None


class InMemoryLedgerStore(LedgerStore):
    """Ledger store backed by process memory."""

    def __init__(self) -> None:
        self._accounts: dict[int, User] = {}
        # Keyed by transaction_no, insertion ordered
        self._transactions: dict[str, WalletTransaction] = {}
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._next_user_id = 1
        self._next_txn_id = 1

    # ============ Account Management ============

    def add_account(self, user: User) -> User:
        """Register an account. Balances always start at zero."""
        stored = _copy_user(user)
        if stored.id is None:
            stored.id = self._next_user_id
        if stored.id in self._accounts:
            raise ValueError(f"User {stored.id} already exists")
        stored.wallet_balance = Decimal("0")
        stored.wallet_version = 0
        self._accounts[stored.id] = stored
        self._next_user_id = max(self._next_user_id, stored.id + 1)
        return _copy_user(stored)

    # ============ Atomic Unit of Work ============

    async def run_atomic(
        self,
        user_id: int,
        work: Callable[[AccountUnit], Awaitable[T]],
    ) -> T:
        async with self._locks[user_id]:
            account = self._accounts.get(user_id)
            if account is None:
                raise AccountNotFoundError(user_id)

            unit = _MemoryAccountUnit(self, account)
            # Yield like a store round trip would, so contending units interleave
            await asyncio.sleep(0)
            result = await work(unit)

            if unit.staged_records:
                self._apply(account, unit)
            return result

    def _apply(self, account: User, unit: AccountUnit) -> None:
        now = utc_now()
        for txn in unit.staged_records:
            if txn.id is None:
                txn.id = self._next_txn_id
                self._next_txn_id += 1
            self._transactions[txn.transaction_no] = _copy_txn(txn)

        if unit.staged_balance is not None:
            account.wallet_balance = unit.staged_balance
            account.wallet_version += 1
            account.updated_at = now

    # ============ Reads ============

    async def get_account(self, user_id: int) -> User | None:
        account = self._accounts.get(user_id)
        return _copy_user(account) if account else None

    async def get_balance(self, user_id: int) -> Decimal:
        account = self._accounts.get(user_id)
        if account is None:
            raise AccountNotFoundError(user_id)
        return account.wallet_balance

    async def get_transaction(self, transaction_no: str) -> WalletTransaction | None:
        txn = self._transactions.get(transaction_no)
        return _copy_txn(txn) if txn else None

    async def get_transaction_by_reference(
        self, reference_number: str
    ) -> WalletTransaction | None:
        for txn in self._transactions.values():
            if txn.reference_number == reference_number:
                return _copy_txn(txn)
        return None

    async def list_transactions(
        self,
        user_id: int,
        params: TransactionQueryParams,
    ) -> tuple[list[WalletTransaction], int]:
        matches = [
            txn
            for txn in self._transactions.values()
            if txn.user_id == user_id
            and (params.type is None or txn.type == params.type)
            and (params.status is None or txn.status == params.status)
            and (params.start_date is None or txn.created_at >= params.start_date)
            and (params.end_date is None or txn.created_at <= params.end_date)
        ]
        matches.sort(key=lambda t: (t.created_at, t.id or 0), reverse=True)

        offset = (params.page - 1) * params.page_size
        page = matches[offset : offset + params.page_size]
        return [_copy_txn(txn) for txn in page], len(matches)

    async def aggregate_by_type(
        self,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        user_id: int | None = None,
        status: TransactionStatus | None = TransactionStatus.COMPLETED,
    ) -> dict[TransactionType, TypeTotals]:
        totals: dict[TransactionType, TypeTotals] = {}
        for txn in self._transactions.values():
            if status is not None and txn.status != status:
                continue
            if user_id is not None and txn.user_id != user_id:
                continue
            if start_date is not None and txn.created_at < start_date:
                continue
            if end_date is not None and txn.created_at > end_date:
                continue
            bucket = totals.setdefault(txn.type, TypeTotals())
            bucket.count += 1
            bucket.total_amount += txn.amount
        return totals

    async def balance_summary(self) -> BalanceSummary:
        balances = [account.wallet_balance for account in self._accounts.values()]
        return BalanceSummary(
            total_balance=sum(balances, Decimal("0")),
            users_with_balance=sum(1 for balance in balances if balance > 0),
        )

    async def search_accounts(self, query: str, limit: int = 10) -> list[User]:
        needle = query.lower()
        hits = [
            account
            for account in self._accounts.values()
            if needle in account.name.lower() or needle in (account.phone or "").lower()
        ]
        return [_copy_user(account) for account in hits[:limit]]

    async def account_ids(self) -> list[int]:
        return sorted(self._accounts)

    async def account_ledger(self, user_id: int) -> AccountLedger:
        account = self._accounts.get(user_id)
        if account is None:
            raise AccountNotFoundError(user_id)

        applied = [
            _copy_txn(txn)
            for txn in self._transactions.values()
            if txn.user_id == user_id and txn.status in EFFECT_STATUSES
        ]
        applied.sort(key=lambda t: (t.completed_at or t.created_at, t.id or 0))
        return AccountLedger(
            user_id=user_id, balance=account.wallet_balance, transactions=applied
        )

    # ============ Maintenance ============

    def overwrite_balance(self, user_id: int, balance: Decimal) -> None:
        """Set a balance without a transaction record.

        Simulates an out-of-band write (e.g. a manual database edit) so that
        reconciliation can be exercised. Never used by the wallet engine.
        """
        logger.warning(f"Overwriting balance of user {user_id} without a ledger entry")
        self._accounts[user_id].wallet_balance = balance
