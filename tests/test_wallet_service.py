"""Tests for the wallet engine, run against both ledger stores."""

from datetime import timedelta
from decimal import Decimal

import pytest

from wallet_ledger.core.exceptions import (
    AccountNotFoundError,
    InsufficientBalanceError,
    InvalidStateError,
    NegativeBalanceGuardError,
    TransactionNotFoundError,
    ValidationError,
)
from wallet_ledger.models.wallet import TransactionStatus, TransactionType
from wallet_ledger.schemas.wallet import TransactionQueryParams
from wallet_ledger.services import ReconciliationService
from wallet_ledger.utils.helpers import utc_now


async def history(wallet, user_id, **filters):
    items, total = await wallet.list_transactions(user_id, TransactionQueryParams(**filters))
    return items, total


# =============================================================================
# Credit
# =============================================================================


@pytest.mark.asyncio
async def test_credit_records_completed_transaction(wallet, make_account):
    user_id = await make_account()

    txn = await wallet.credit(
        user_id, "100", TransactionType.TOP_UP, "Top-up", {"reference_number": "PH1"}
    )

    assert txn.status == TransactionStatus.COMPLETED
    assert txn.amount == Decimal("100")
    assert txn.balance_before == Decimal("0")
    assert txn.balance_after == Decimal("100")
    assert txn.completed_at is not None
    assert txn.meta == {"reference_number": "PH1"}
    assert await wallet.get_balance(user_id) == Decimal("100")


@pytest.mark.asyncio
async def test_credit_refund_and_bonus(wallet, make_account):
    user_id = await make_account(balance=10)

    await wallet.credit(user_id, 5, TransactionType.REFUND, "Order refund", {"order_id": 7})
    await wallet.add_bonus(user_id, "2.5", admin_id=99)

    assert await wallet.get_balance(user_id) == Decimal("17.5")
    items, _ = await history(wallet, user_id, type=TransactionType.BONUS)
    assert items[0].description == "Admin bonus of 2.5"
    assert items[0].meta["admin_id"] == 99


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, "-5", "abc", 1.5])
async def test_credit_rejects_invalid_amount(wallet, make_account, amount):
    user_id = await make_account()

    with pytest.raises(ValidationError):
        await wallet.credit(user_id, amount, TransactionType.TOP_UP, "Top-up")

    assert await wallet.get_balance(user_id) == Decimal("0")


@pytest.mark.asyncio
async def test_credit_rejects_debit_type(wallet, make_account):
    user_id = await make_account()

    with pytest.raises(ValidationError):
        await wallet.credit(user_id, 10, TransactionType.ORDER_PAYMENT, "Wrong direction")


@pytest.mark.asyncio
async def test_credit_rejects_empty_description(wallet, make_account):
    user_id = await make_account()

    with pytest.raises(ValidationError):
        await wallet.credit(user_id, 10, TransactionType.TOP_UP, "   ")


@pytest.mark.asyncio
async def test_credit_unknown_account(wallet):
    with pytest.raises(AccountNotFoundError):
        await wallet.credit(424242, 10, TransactionType.TOP_UP, "Top-up")


# =============================================================================
# Debit
# =============================================================================


@pytest.mark.asyncio
async def test_debit_success(wallet, make_account):
    user_id = await make_account(balance=100)

    txn = await wallet.debit(
        user_id, 30, TransactionType.ORDER_PAYMENT, "Order #1001", {"order_id": 1001}
    )

    assert txn.amount == Decimal("30")
    assert txn.balance_before == Decimal("100")
    assert txn.balance_after == Decimal("70")
    assert txn.status == TransactionStatus.COMPLETED
    assert await wallet.get_balance(user_id) == Decimal("70")


@pytest.mark.asyncio
async def test_debit_insufficient_balance_leaves_no_trace(wallet, make_account):
    user_id = await make_account(balance=100)
    await wallet.debit(user_id, 30, TransactionType.ORDER_PAYMENT, "Order #1001")
    _, total_before = await history(wallet, user_id)

    with pytest.raises(InsufficientBalanceError) as exc_info:
        await wallet.debit(user_id, 150, TransactionType.ORDER_PAYMENT, "Order #1002")

    details = exc_info.value.details
    assert Decimal(details["required"]) == Decimal("150")
    assert Decimal(details["available"]) == Decimal("70")
    assert await wallet.get_balance(user_id) == Decimal("70")
    _, total_after = await history(wallet, user_id)
    assert total_after == total_before


@pytest.mark.asyncio
async def test_debit_exact_balance(wallet, make_account):
    user_id = await make_account(balance=40)

    await wallet.deduct(user_id, 40, admin_id=1, reason="Chargeback")

    assert await wallet.get_balance(user_id) == Decimal("0")


@pytest.mark.asyncio
async def test_debit_rejects_credit_type(wallet, make_account):
    user_id = await make_account(balance=40)

    with pytest.raises(ValidationError):
        await wallet.debit(user_id, 10, TransactionType.REFUND, "Wrong direction")


# =============================================================================
# Reverse
# =============================================================================


@pytest.mark.asyncio
async def test_reverse_top_up_applies_to_current_balance(wallet, make_account):
    user_id = await make_account()
    top_up = await wallet.credit(user_id, 50, TransactionType.TOP_UP, "Top-up")
    await wallet.credit(user_id, 70, TransactionType.BONUS, "Bonus")

    reversal = await wallet.reverse(top_up.transaction_no, "Chargeback", operator_id=5)

    assert reversal.type == TransactionType.REVERSAL
    assert reversal.status == TransactionStatus.COMPLETED
    assert reversal.amount == Decimal("50")
    assert reversal.balance_before == Decimal("120")
    assert reversal.balance_after == Decimal("70")
    assert reversal.reversed_transaction_id == top_up.id
    assert reversal.reversal_reason == "Chargeback"
    assert reversal.meta["admin_id"] == 5
    assert await wallet.get_balance(user_id) == Decimal("70")

    original = await wallet.store.get_transaction(top_up.transaction_no)
    assert original.status == TransactionStatus.REVERSED
    assert original.balance_before == Decimal("0")
    assert original.balance_after == Decimal("50")
    assert original.meta["reversed_by"] == reversal.transaction_no


@pytest.mark.asyncio
async def test_reverse_debit_credits_back(wallet, make_account):
    user_id = await make_account(balance=100)
    payment = await wallet.debit(user_id, 30, TransactionType.ORDER_PAYMENT, "Order #1")

    reversal = await wallet.reverse(payment.transaction_no, "Order cancelled")

    assert reversal.balance_before == Decimal("70")
    assert reversal.balance_after == Decimal("100")
    assert await wallet.get_balance(user_id) == Decimal("100")


@pytest.mark.asyncio
async def test_reverse_guard_blocks_negative_balance(wallet, make_account):
    user_id = await make_account()
    credit = await wallet.credit(user_id, 100, TransactionType.TOP_UP, "Top-up")
    await wallet.debit(user_id, 80, TransactionType.ORDER_PAYMENT, "Order #1")

    with pytest.raises(NegativeBalanceGuardError):
        await wallet.reverse(credit.transaction_no, "Chargeback")

    assert await wallet.get_balance(user_id) == Decimal("20")
    original = await wallet.store.get_transaction(credit.transaction_no)
    assert original.status == TransactionStatus.COMPLETED
    _, total = await history(wallet, user_id)
    assert total == 2


@pytest.mark.asyncio
async def test_reverse_twice_is_rejected(wallet, make_account):
    user_id = await make_account()
    credit = await wallet.credit(user_id, 100, TransactionType.TOP_UP, "Top-up")
    await wallet.reverse(credit.transaction_no, "Duplicate top-up")

    with pytest.raises(InvalidStateError):
        await wallet.reverse(credit.transaction_no, "Again")

    assert await wallet.get_balance(user_id) == Decimal("0")


@pytest.mark.asyncio
async def test_reverse_pending_is_rejected(wallet, make_account):
    user_id = await make_account(balance=10)
    pending = await wallet.open_pending(user_id, 25, "PH-REV-1", "Top-up of 25")

    with pytest.raises(InvalidStateError):
        await wallet.reverse(pending.transaction_no, "Not yet paid")


@pytest.mark.asyncio
async def test_reverse_unknown_transaction(wallet):
    with pytest.raises(TransactionNotFoundError):
        await wallet.reverse("TXN0000000000000NOPE", "Unknown")


@pytest.mark.asyncio
async def test_reverse_requires_reason(wallet, make_account):
    user_id = await make_account()
    credit = await wallet.credit(user_id, 10, TransactionType.TOP_UP, "Top-up")

    with pytest.raises(ValidationError):
        await wallet.reverse(credit.transaction_no, "")


@pytest.mark.asyncio
async def test_reversal_can_be_undone(wallet, make_account):
    user_id = await make_account(balance=100)
    payment = await wallet.debit(user_id, 30, TransactionType.ORDER_PAYMENT, "Order #1")
    reversal = await wallet.reverse(payment.transaction_no, "Cancelled")

    undo = await wallet.reverse(reversal.transaction_no, "Cancelled by mistake")

    assert undo.balance_before == Decimal("100")
    assert undo.balance_after == Decimal("70")
    assert await wallet.get_balance(user_id) == Decimal("70")


@pytest.mark.asyncio
async def test_ledger_reconciles_after_mixed_activity(wallet, make_account):
    user_id = await make_account(balance=100)
    payment = await wallet.debit(user_id, 30, TransactionType.ORDER_PAYMENT, "Order #1")
    await wallet.credit(user_id, 5, TransactionType.REFUND, "Partial refund")
    await wallet.reverse(payment.transaction_no, "Cancelled")
    pending = await wallet.open_pending(user_id, 40, "PH-MIX-1", "Top-up of 40")
    await wallet.deduct(user_id, 15, admin_id=1)
    await wallet.settle_pending(pending.reference_number, succeeded=True)

    assert await wallet.get_balance(user_id) == Decimal("130")
    report = await ReconciliationService(wallet.store).audit()
    assert report.discrepancies == []


# =============================================================================
# Queries
# =============================================================================


@pytest.mark.asyncio
async def test_history_newest_first_with_filters(wallet, make_account):
    user_id = await make_account()
    await wallet.credit(user_id, 100, TransactionType.TOP_UP, "Top-up")
    await wallet.debit(user_id, 30, TransactionType.ORDER_PAYMENT, "Order #1")
    await wallet.credit(user_id, 10, TransactionType.REFUND, "Refund")

    items, total = await history(wallet, user_id)
    assert total == 3
    assert [t.type for t in items] == [
        TransactionType.REFUND,
        TransactionType.ORDER_PAYMENT,
        TransactionType.TOP_UP,
    ]

    items, total = await history(wallet, user_id, type=TransactionType.ORDER_PAYMENT)
    assert total == 1
    assert items[0].amount == Decimal("30")

    items, total = await history(
        wallet, user_id, type=TransactionType.TOP_UP, status=TransactionStatus.FAILED
    )
    assert (items, total) == ([], 0)

    items, total = await history(wallet, user_id, page=2, page_size=2)
    assert total == 3
    assert [t.type for t in items] == [TransactionType.TOP_UP]


@pytest.mark.asyncio
async def test_history_date_range(wallet, make_account):
    user_id = await make_account(balance=10)
    now = utc_now()

    _, total = await history(
        wallet, user_id, start_date=now - timedelta(hours=1), end_date=now + timedelta(hours=1)
    )
    assert total == 1

    _, total = await history(wallet, user_id, start_date=now + timedelta(hours=1))
    assert total == 0


@pytest.mark.asyncio
async def test_history_unknown_account(wallet):
    with pytest.raises(AccountNotFoundError):
        await history(wallet, 424242)


@pytest.mark.asyncio
async def test_verify_balance(wallet, make_account):
    user_id = await make_account(balance=70)

    enough = await wallet.verify_balance(user_id, 50)
    assert enough.has_balance is True
    assert enough.shortfall == Decimal("0")

    short = await wallet.verify_balance(user_id, 100)
    assert short.has_balance is False
    assert short.shortfall == Decimal("30")


@pytest.mark.asyncio
async def test_statistics(wallet, make_account):
    alice = await make_account(name="Alice", balance=100)
    await make_account(name="Bob")
    await wallet.debit(alice, 30, TransactionType.ORDER_PAYMENT, "Order #1")
    await wallet.add_bonus(alice, 5, admin_id=1)
    await wallet.open_pending(alice, 20, "PH-STATS-1", "Top-up of 20")

    stats = await wallet.get_statistics()

    assert stats.total_balance == Decimal("75")
    assert stats.users_with_balance == 1
    assert stats.summary.top_ups.count == 1
    assert stats.summary.top_ups.total_amount == Decimal("100")
    assert stats.summary.payments.count == 1
    assert stats.summary.payments.total_amount == Decimal("30")
    assert stats.summary.bonuses.total_amount == Decimal("5")
    assert stats.summary.refunds.count == 0
    assert set(stats.transaction_stats) == {"top_up", "order_payment", "bonus"}


@pytest.mark.asyncio
async def test_statistics_excludes_out_of_range(wallet, make_account):
    await make_account(balance=100)

    stats = await wallet.get_statistics(start_date=utc_now() + timedelta(days=1))

    assert stats.summary.top_ups.count == 0
    assert stats.total_balance == Decimal("100")


@pytest.mark.asyncio
async def test_statistics_rejects_inverted_range(wallet):
    now = utc_now()
    with pytest.raises(ValidationError):
        await wallet.get_statistics(start_date=now, end_date=now - timedelta(days=1))


@pytest.mark.asyncio
async def test_user_wallet_counts_every_status(wallet, make_account):
    user_id = await make_account(name="Carol", phone="9876500003", balance=50)
    await wallet.open_pending(user_id, 20, "PH-USER-1", "Top-up of 20")

    view = await wallet.get_user_wallet(user_id)

    assert view.user.name == "Carol"
    assert view.user.wallet_balance == Decimal("50")
    assert view.stats_by_type["top_up"].count == 2
    assert len(view.recent_transactions) == 2
    assert view.recent_transactions[0].status == TransactionStatus.PENDING


@pytest.mark.asyncio
async def test_search_users(wallet, make_account):
    await make_account(name="Alice Smith", phone="9876500001")
    await make_account(name="Bob Jones", phone="9876500002")

    assert [u.name for u in await wallet.search_users("ALI")] == ["Alice Smith"]
    assert len(await wallet.search_users("98765")) == 2
    assert await wallet.search_users("zz") == []

    with pytest.raises(ValidationError):
        await wallet.search_users("a")
