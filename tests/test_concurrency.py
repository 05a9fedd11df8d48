"""Tests for serialized units of work and compare-and-set retries."""

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import func, update
from sqlmodel import select

from wallet_ledger.core.exceptions import InsufficientBalanceError, StorageFailure
from wallet_ledger.models.user import User
from wallet_ledger.models.wallet import TransactionStatus, TransactionType, WalletTransaction
from wallet_ledger.services import ReconciliationService, WalletService
from wallet_ledger.utils.helpers import utc_now


def bonus_work(amount: Decimal):
    """Work function crediting a bonus, as the wallet engine would."""

    async def work(unit):
        now = utc_now()
        txn = WalletTransaction(
            user_id=unit.user_id,
            type=TransactionType.BONUS,
            status=TransactionStatus.COMPLETED,
            amount=amount,
            balance_before=unit.balance,
            balance_after=unit.balance + amount,
            description="Bonus",
            completed_at=now,
        )
        unit.record(unit.balance + amount, txn)
        return txn

    return work


async def add_user(session_factory, name: str) -> int:
    async with session_factory() as session:
        user = User(name=name)
        session.add(user)
        await session.commit()
        return user.id


async def bump_version(session_factory, user_id: int) -> None:
    """Change the account version behind the back of a running unit of work."""
    async with session_factory() as session:
        await session.execute(
            update(User)
            .where(User.id == user_id)
            .values(wallet_version=User.wallet_version + 1)
        )
        await session.commit()


# =============================================================================
# Both stores
# =============================================================================


@pytest.mark.asyncio
async def test_concurrent_debits_all_succeed(store, wallet, make_account):
    user_id = await make_account(name="Busy", balance=100)

    results = await asyncio.gather(
        *(
            wallet.debit(user_id, 10, TransactionType.ORDER_PAYMENT, f"Order #{i}")
            for i in range(10)
        )
    )

    assert await wallet.get_balance(user_id) == Decimal("0")
    assert sorted(txn.balance_before for txn in results) == [
        Decimal(10 * i) for i in range(1, 11)
    ]
    report = await ReconciliationService(store).audit()
    assert report.discrepancies == []


@pytest.mark.asyncio
async def test_concurrent_debits_one_rejected(store, wallet, make_account):
    user_id = await make_account(name="Busy", balance=100)

    results = await asyncio.gather(
        *(
            wallet.debit(user_id, 10, TransactionType.ORDER_PAYMENT, f"Order #{i}")
            for i in range(11)
        ),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], InsufficientBalanceError)
    assert await wallet.get_balance(user_id) == Decimal("0")
    report = await ReconciliationService(store).audit()
    assert report.discrepancies == []


@pytest.mark.asyncio
async def test_concurrent_credits_and_reversal(store, wallet, make_account):
    user_id = await make_account(name="Busy")
    top_up = await wallet.credit(user_id, 50, TransactionType.TOP_UP, "Top-up")

    await asyncio.gather(
        wallet.reverse(top_up.transaction_no, "Chargeback"),
        *(wallet.credit(user_id, 5, TransactionType.BONUS, "Bonus") for _ in range(4)),
    )

    assert await wallet.get_balance(user_id) == Decimal("20")
    report = await ReconciliationService(store).audit()
    assert report.discrepancies == []


# =============================================================================
# In-memory store
# =============================================================================


@pytest.mark.asyncio
async def test_accounts_do_not_block_each_other(memory_store):
    wallet = WalletService(memory_store)
    user_ids = [memory_store.add_account(User(name=f"User {i}")).id for i in range(5)]

    await asyncio.gather(
        *(
            wallet.credit(user_id, amount, TransactionType.TOP_UP, "Top-up")
            for user_id in user_ids
            for amount in (10, 20)
        )
    )

    for user_id in user_ids:
        assert await wallet.get_balance(user_id) == Decimal("30")


# =============================================================================
# SQL store
# =============================================================================


@pytest.mark.asyncio
async def test_sql_version_conflict_is_retried(unserialized_sql_env):
    store, session_factory = unserialized_sql_env
    user_id = await add_user(session_factory, "Racer")
    attempts = 0
    credit = bonus_work(Decimal("25"))

    async def work(unit):
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            await bump_version(session_factory, user_id)
        return await credit(unit)

    txn = await store.run_atomic(user_id, work)

    assert attempts == 2
    assert txn.balance_after == Decimal("25")
    assert await store.get_balance(user_id) == Decimal("25")

    async with session_factory() as session:
        count = await session.execute(
            select(func.count(WalletTransaction.id)).where(WalletTransaction.user_id == user_id)
        )
        assert count.scalar_one() == 1
        account = await session.get(User, user_id)
        # One bump from the competing writer, one from the retried unit
        assert account.wallet_version == 2


@pytest.mark.asyncio
async def test_sql_retries_exhausted(unserialized_sql_env):
    store, session_factory = unserialized_sql_env
    user_id = await add_user(session_factory, "Racer")
    attempts = 0
    credit = bonus_work(Decimal("25"))

    async def work(unit):
        nonlocal attempts
        attempts += 1
        await bump_version(session_factory, user_id)
        return await credit(unit)

    with pytest.raises(StorageFailure):
        await store.run_atomic(user_id, work)

    assert attempts == 3
    assert await store.get_balance(user_id) == Decimal("0")
    async with session_factory() as session:
        count = await session.execute(select(func.count(WalletTransaction.id)))
        assert count.scalar_one() == 0


@pytest.mark.asyncio
async def test_sql_failed_work_persists_nothing(sql_env):
    store, session_factory = sql_env
    wallet = WalletService(store)
    user_id = await add_user(session_factory, "Careful")
    await wallet.credit(user_id, 40, TransactionType.TOP_UP, "Top-up")

    with pytest.raises(InsufficientBalanceError):
        await wallet.debit(user_id, 41, TransactionType.ORDER_PAYMENT, "Order #1")

    assert await store.get_balance(user_id) == Decimal("40")
    async with session_factory() as session:
        count = await session.execute(select(func.count(WalletTransaction.id)))
        assert count.scalar_one() == 1
