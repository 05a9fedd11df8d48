"""SQL ledger store.

Each unit of work runs in its own session and transaction:

1. Lock the account row (``SELECT ... FOR UPDATE``) and remember its version
2. Run the work function
3. Write the new balance with a compare-and-set on ``wallet_version``
4. Insert or update the staged transaction records
5. Commit

SQLite has no row locks; engines built by ``wallet_ledger.db.build_engine`` begin
every SQLite transaction with ``BEGIN IMMEDIATE`` instead, so step 1 waits for
other writers there too. A failed compare-and-set means another writer changed
the account since step 1 anyway. The transaction is rolled back and the whole
unit of work is retried with fresh state after a short random pause.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from datetime import datetime
from decimal import Decimal

from sqlalchemy import case, func, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import Select
from sqlmodel import select

from wallet_ledger.core.exceptions import AccountNotFoundError, StorageFailure
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

# Upper bound in seconds of the pause before retry n is n * RETRY_BACKOFF
RETRY_BACKOFF = 0.02


class _VersionConflict(Exception):
    """Account version changed between read and write."""


class _SQLAccountUnit(AccountUnit):
    def __init__(self, session: AsyncSession, account: User) -> None:
        super().__init__(account.id, account.wallet_balance)  # type: ignore[arg-type]
        self._session = session
        self.version = account.wallet_version

    async def find_transaction(
        self,
        transaction_no: str | None = None,
        reference_number: str | None = None,
    ) -> WalletTransaction | None:
        query = select(WalletTransaction).where(WalletTransaction.user_id == self.user_id)
        if transaction_no is not None:
            query = query.where(WalletTransaction.transaction_no == transaction_no)
        if reference_number is not None:
            query = query.where(WalletTransaction.reference_number == reference_number)

        result = await self._session.execute(query.limit(1).with_for_update())
        return result.scalar_one_or_none()


async def _fetch_page(
    session: AsyncSession, query: Select, page: int, page_size: int
) -> tuple[list[WalletTransaction], int]:
    """Return one page of an ordered transaction query and the number of matches."""
    count_result = await session.execute(
        select(func.count()).select_from(query.order_by(None).subquery())
    )
    total = count_result.scalar() or 0

    result = await session.execute(query.offset((page - 1) * page_size).limit(page_size))
    return list(result.scalars().all()), total


class SQLLedgerStore(LedgerStore):
    """Ledger store backed by the relational database."""

    def __init__(self, session_factory: sessionmaker, max_retries: int = 3) -> None:
        self._session_factory = session_factory
        self._max_retries = max_retries

    # ============ Atomic Unit of Work ============

    async def run_atomic(
        self,
        user_id: int,
        work: Callable[[AccountUnit], Awaitable[T]],
    ) -> T:
        for attempt in range(1, self._max_retries + 1):
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        result = await session.execute(
                            select(User).where(User.id == user_id).with_for_update()
                        )
                        account = result.scalar_one_or_none()
                        if account is None:
                            raise AccountNotFoundError(user_id)

                        unit = _SQLAccountUnit(session, account)
                        outcome = await work(unit)

                        if unit.staged_records:
                            await self._apply(session, unit)
                    return outcome
            except _VersionConflict:
                logger.warning(
                    f"Balance version conflict for user {user_id} "
                    f"(attempt {attempt}/{self._max_retries})"
                )
                if attempt < self._max_retries:
                    await asyncio.sleep(random.uniform(0, RETRY_BACKOFF * attempt))
            except SQLAlchemyError as e:
                logger.error(f"Ledger unit of work failed for user {user_id}: {e}")
                raise StorageFailure(
                    "Wallet storage is unavailable, please retry", {"user_id": user_id}
                ) from e

        raise StorageFailure(
            "Wallet is busy, please retry",
            {"user_id": user_id, "attempts": self._max_retries},
        )

    async def _apply(self, session: AsyncSession, unit: _SQLAccountUnit) -> None:
        now = utc_now()

        if unit.staged_balance is not None:
            result = await session.execute(
                update(User)
                .where(User.id == unit.user_id, User.wallet_version == unit.version)
                .values(
                    wallet_balance=unit.staged_balance,
                    wallet_version=User.wallet_version + 1,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise _VersionConflict()

        for txn in unit.staged_records:
            session.add(txn)
        await session.flush()

    # ============ Reads ============

    async def get_account(self, user_id: int) -> User | None:
        async with self._session_factory() as session:
            return await session.get(User, user_id)

    async def get_balance(self, user_id: int) -> Decimal:
        async with self._session_factory() as session:
            result = await session.execute(
                select(User.wallet_balance).where(User.id == user_id)
            )
            balance = result.scalar_one_or_none()
        if balance is None:
            raise AccountNotFoundError(user_id)
        return balance

    async def get_transaction(self, transaction_no: str) -> WalletTransaction | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(WalletTransaction).where(
                    WalletTransaction.transaction_no == transaction_no
                )
            )
            return result.scalar_one_or_none()

    async def get_transaction_by_reference(
        self, reference_number: str
    ) -> WalletTransaction | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(WalletTransaction)
                .where(WalletTransaction.reference_number == reference_number)
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def list_transactions(
        self,
        user_id: int,
        params: TransactionQueryParams,
    ) -> tuple[list[WalletTransaction], int]:
        query = select(WalletTransaction).where(WalletTransaction.user_id == user_id)

        if params.type:
            query = query.where(WalletTransaction.type == params.type)
        if params.status:
            query = query.where(WalletTransaction.status == params.status)
        if params.start_date:
            query = query.where(WalletTransaction.created_at >= params.start_date)
        if params.end_date:
            query = query.where(WalletTransaction.created_at <= params.end_date)

        query = query.order_by(
            WalletTransaction.created_at.desc(),  # type: ignore[attr-defined]
            WalletTransaction.id.desc(),  # type: ignore[union-attr]
        )

        async with self._session_factory() as session:
            return await _fetch_page(session, query, params.page, params.page_size)

    async def aggregate_by_type(
        self,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        user_id: int | None = None,
        status: TransactionStatus | None = TransactionStatus.COMPLETED,
    ) -> dict[TransactionType, TypeTotals]:
        query = select(
            WalletTransaction.type,
            func.count(WalletTransaction.id),
            func.coalesce(func.sum(WalletTransaction.amount), 0),
        ).group_by(WalletTransaction.type)

        if status is not None:
            query = query.where(WalletTransaction.status == status)
        if user_id is not None:
            query = query.where(WalletTransaction.user_id == user_id)
        if start_date:
            query = query.where(WalletTransaction.created_at >= start_date)
        if end_date:
            query = query.where(WalletTransaction.created_at <= end_date)

        async with self._session_factory() as session:
            result = await session.execute(query)
            rows = result.all()

        return {
            txn_type: TypeTotals(count=count, total_amount=Decimal(str(total)))
            for txn_type, count, total in rows
        }

    async def balance_summary(self) -> BalanceSummary:
        query = select(
            func.coalesce(func.sum(User.wallet_balance), 0),
            func.coalesce(func.sum(case((User.wallet_balance > 0, 1), else_=0)), 0),
        )
        async with self._session_factory() as session:
            result = await session.execute(query)
            total_balance, users_with_balance = result.one()

        return BalanceSummary(
            total_balance=Decimal(str(total_balance)),
            users_with_balance=int(users_with_balance),
        )

    async def search_accounts(self, query: str, limit: int = 10) -> list[User]:
        pattern = f"%{query.lower()}%"
        statement = (
            select(User)
            .where(
                or_(
                    func.lower(User.name).like(pattern),
                    func.lower(User.phone).like(pattern),
                )
            )
            .order_by(User.id)
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return list(result.scalars().all())

    async def account_ids(self) -> list[int]:
        async with self._session_factory() as session:
            result = await session.execute(select(User.id).order_by(User.id))
            return list(result.scalars().all())

    async def account_ledger(self, user_id: int) -> AccountLedger:
        async with self._session_factory() as session:
            balance_result = await session.execute(
                select(User.wallet_balance).where(User.id == user_id)
            )
            balance = balance_result.scalar_one_or_none()
            if balance is None:
                raise AccountNotFoundError(user_id)

            txn_result = await session.execute(
                select(WalletTransaction)
                .where(
                    WalletTransaction.user_id == user_id,
                    WalletTransaction.status.in_(EFFECT_STATUSES),  # type: ignore[attr-defined]
                )
                .order_by(
                    func.coalesce(WalletTransaction.completed_at, WalletTransaction.created_at),
                    WalletTransaction.id,
                )
            )
            transactions = list(txn_result.scalars().all())

        return AccountLedger(user_id=user_id, balance=balance, transactions=transactions)
