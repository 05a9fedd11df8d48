"""Wallet Service - The only mutator of wallet balances.

Every balance change runs inside ``LedgerStore.run_atomic``: the work
functions below read the balance handed to them by the store, compute the
change and stage it together with the transaction record that explains it.
The service adds no locking of its own.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from wallet_ledger.core.exceptions import (
    AccountNotFoundError,
    InsufficientBalanceError,
    InvalidStateError,
    NegativeBalanceGuardError,
    TransactionNotFoundError,
    ValidationError,
)
from wallet_ledger.models.user import User
from wallet_ledger.models.wallet import (
    CREDIT_TYPES,
    DEBIT_TYPES,
    TransactionStatus,
    TransactionType,
    WalletTransaction,
    expected_balance_after,
)
from wallet_ledger.schemas.wallet import (
    BalanceCheckResponse,
    TransactionQueryParams,
    TypeStats,
    UserWalletResponse,
    WalletStatsResponse,
    WalletStatsSummary,
    WalletSummaryResponse,
    WalletTransactionResponse,
    WalletUserInfo,
)
from wallet_ledger.store.base import AccountUnit, LedgerStore, TypeTotals
from wallet_ledger.utils.helpers import to_amount, utc_now

logger = logging.getLogger(__name__)

DESCRIPTION_MAX_LENGTH = 500
SEARCH_MIN_LENGTH = 2
SEARCH_LIMIT = 10
SUMMARY_RECENT_COUNT = 10
ADMIN_RECENT_COUNT = 20


def _check_user_id(user_id: Any) -> int:
    if isinstance(user_id, bool) or not isinstance(user_id, int) or user_id <= 0:
        raise ValidationError("Invalid user id", {"user_id": user_id})
    return user_id


def _check_description(description: str | None) -> str:
    text = (description or "").strip()
    if not text:
        raise ValidationError("Description is required")
    if len(text) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(
            f"Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters",
            {"length": len(text)},
        )
    return text


def _type_stats(totals: TypeTotals | None) -> TypeStats:
    if totals is None:
        return TypeStats()
    return TypeStats(count=totals.count, total_amount=totals.total_amount)


class WalletService:
    """Service for wallet balance operations."""

    def __init__(self, store: LedgerStore):
        self.store = store

    # =========================================================================
    # Balance Mutations
    # =========================================================================

    async def credit(
        self,
        user_id: int,
        amount: Decimal | int | str,
        txn_type: TransactionType,
        description: str,
        metadata: dict[str, Any] | None = None,
    ) -> WalletTransaction:
        """Add money to a wallet.

        Args:
            user_id: Account owner
            amount: Positive amount
            txn_type: top_up, refund or bonus
            description: Human-readable description
            metadata: Context such as order_id or admin_id

        Returns:
            The completed transaction

        Raises:
            ValidationError: Invalid amount, type or description
            AccountNotFoundError: Account does not exist
        """
        user_id = _check_user_id(user_id)
        if txn_type not in CREDIT_TYPES:
            raise ValidationError(
                f"{txn_type.value} is not a credit transaction type", {"type": txn_type.value}
            )
        amount = to_amount(amount)
        description = _check_description(description)
        meta = dict(metadata or {})

        async def work(unit: AccountUnit) -> WalletTransaction:
            before = unit.balance
            after = before + amount
            now = utc_now()
            txn = WalletTransaction(
                user_id=user_id,
                type=txn_type,
                status=TransactionStatus.COMPLETED,
                amount=amount,
                balance_before=before,
                balance_after=after,
                description=description,
                meta=dict(meta),
                created_at=now,
                updated_at=now,
                completed_at=now,
            )
            unit.record(after, txn)
            return txn

        txn = await self.store.run_atomic(user_id, work)
        logger.info(
            f"Credited {amount} ({txn_type.value}) to user {user_id}: "
            f"{txn.balance_before} -> {txn.balance_after} [{txn.transaction_no}]"
        )
        return txn

    async def debit(
        self,
        user_id: int,
        amount: Decimal | int | str,
        txn_type: TransactionType,
        description: str,
        metadata: dict[str, Any] | None = None,
    ) -> WalletTransaction:
        """Remove money from a wallet.

        The balance must cover the amount; otherwise nothing is written.

        Raises:
            ValidationError: Invalid amount, type or description
            AccountNotFoundError: Account does not exist
            InsufficientBalanceError: Balance is lower than the amount
        """
        user_id = _check_user_id(user_id)
        if txn_type not in DEBIT_TYPES:
            raise ValidationError(
                f"{txn_type.value} is not a debit transaction type", {"type": txn_type.value}
            )
        amount = to_amount(amount)
        description = _check_description(description)
        meta = dict(metadata or {})

        async def work(unit: AccountUnit) -> WalletTransaction:
            before = unit.balance
            if before < amount:
                raise InsufficientBalanceError(
                    required=amount,
                    available=before,
                    message=(
                        f"Insufficient wallet balance. Available: {before}, Required: {amount}"
                    ),
                )
            after = before - amount
            now = utc_now()
            txn = WalletTransaction(
                user_id=user_id,
                type=txn_type,
                status=TransactionStatus.COMPLETED,
                amount=amount,
                balance_before=before,
                balance_after=after,
                description=description,
                meta=dict(meta),
                created_at=now,
                updated_at=now,
                completed_at=now,
            )
            unit.record(after, txn)
            return txn

        try:
            txn = await self.store.run_atomic(user_id, work)
        except InsufficientBalanceError as e:
            logger.warning(f"Debit of {amount} rejected for user {user_id}: {e.message}")
            raise

        logger.info(
            f"Debited {amount} ({txn_type.value}) from user {user_id}: "
            f"{txn.balance_before} -> {txn.balance_after} [{txn.transaction_no}]"
        )
        return txn

    async def reverse(
        self,
        transaction_no: str,
        reason: str,
        operator_id: int | None = None,
    ) -> WalletTransaction:
        """Offset a completed transaction.

        The inverse of the original's effect is applied to the *current*
        balance. The original becomes ``reversed`` in the same unit of work.

        Args:
            transaction_no: Transaction to reverse
            reason: Operator reason
            operator_id: Admin performing the reversal

        Returns:
            The new reversal transaction

        Raises:
            TransactionNotFoundError: Unknown transaction
            InvalidStateError: Transaction is not completed
            NegativeBalanceGuardError: Reversal would make the balance negative
        """
        if not transaction_no:
            raise ValidationError("Transaction number is required")
        reason = _check_description(reason)

        original = await self.store.get_transaction(transaction_no)
        if original is None:
            raise TransactionNotFoundError(
                "Transaction not found", {"transaction_no": transaction_no}
            )

        async def work(unit: AccountUnit) -> WalletTransaction:
            target = await unit.find_transaction(transaction_no=transaction_no)
            if target is None:
                raise TransactionNotFoundError(
                    "Transaction not found", {"transaction_no": transaction_no}
                )
            if target.status != TransactionStatus.COMPLETED:
                raise InvalidStateError(
                    "Can only reverse completed transactions",
                    {"transaction_no": transaction_no, "status": target.status.value},
                )

            before = unit.balance
            after = before - target.balance_delta
            if after < 0:
                raise NegativeBalanceGuardError(
                    "Reversal would result in negative balance",
                    {
                        "transaction_no": transaction_no,
                        "current_balance": str(before),
                        "amount": str(target.amount),
                    },
                )

            now = utc_now()
            meta: dict[str, Any] = {
                "reason": reason,
                "original_transaction_no": target.transaction_no,
            }
            if operator_id is not None:
                meta["admin_id"] = operator_id

            reversal = WalletTransaction(
                user_id=target.user_id,
                type=TransactionType.REVERSAL,
                status=TransactionStatus.COMPLETED,
                amount=target.amount,
                balance_before=before,
                balance_after=after,
                description=f"Reversal of transaction {target.transaction_no}",
                meta=meta,
                reversed_transaction_id=target.id,
                reversal_reason=reason,
                created_at=now,
                updated_at=now,
                completed_at=now,
            )

            target.status = TransactionStatus.REVERSED
            target.updated_at = now
            target.meta = {**(target.meta or {}), "reversed_by": reversal.transaction_no}

            unit.record(after, reversal, target)
            return reversal

        try:
            reversal = await self.store.run_atomic(original.user_id, work)
        except (InvalidStateError, NegativeBalanceGuardError) as e:
            logger.warning(f"Reversal of {transaction_no} rejected: {e.message}")
            raise

        logger.info(
            f"Reversed {transaction_no} for user {original.user_id}: "
            f"{reversal.balance_before} -> {reversal.balance_after} "
            f"[{reversal.transaction_no}] reason={reason!r}"
        )
        return reversal

    async def add_bonus(
        self,
        user_id: int,
        amount: Decimal | int | str,
        admin_id: int,
        description: str | None = None,
    ) -> WalletTransaction:
        """Credit an admin bonus."""
        amount = to_amount(amount)
        return await self.credit(
            user_id,
            amount,
            TransactionType.BONUS,
            description or f"Admin bonus of {amount}",
            {"admin_id": admin_id, "reason": description or "Admin bonus"},
        )

    async def deduct(
        self,
        user_id: int,
        amount: Decimal | int | str,
        admin_id: int,
        reason: str | None = None,
    ) -> WalletTransaction:
        """Debit an admin deduction."""
        amount = to_amount(amount)
        return await self.debit(
            user_id,
            amount,
            TransactionType.DEDUCTION,
            reason or f"Admin deduction of {amount}",
            {"admin_id": admin_id, "reason": reason or "Admin deduction"},
        )

    # =========================================================================
    # Pending Transactions (externally confirmed flows)
    # =========================================================================

    async def open_pending(
        self,
        user_id: int,
        amount: Decimal | int | str,
        reference_number: str,
        description: str,
        txn_type: TransactionType = TransactionType.TOP_UP,
        metadata: dict[str, Any] | None = None,
    ) -> WalletTransaction:
        """Create a pending credit awaiting external confirmation.

        The record carries no balance effect: both snapshots equal the
        current balance.
        """
        user_id = _check_user_id(user_id)
        if txn_type not in CREDIT_TYPES:
            raise ValidationError(
                f"{txn_type.value} cannot be confirmed externally", {"type": txn_type.value}
            )
        if not reference_number:
            raise ValidationError("Reference number is required")
        amount = to_amount(amount)
        description = _check_description(description)
        meta = {**(metadata or {}), "reference_number": reference_number}

        async def work(unit: AccountUnit) -> WalletTransaction:
            txn = WalletTransaction(
                user_id=user_id,
                type=txn_type,
                status=TransactionStatus.PENDING,
                amount=amount,
                balance_before=unit.balance,
                balance_after=unit.balance,
                description=description,
                meta=dict(meta),
                reference_number=reference_number,
            )
            unit.record(None, txn)
            return txn

        txn = await self.store.run_atomic(user_id, work)
        logger.info(
            f"Opened pending {txn_type.value} of {amount} for user {user_id} "
            f"[{txn.transaction_no}] ref={reference_number}"
        )
        return txn

    async def settle_pending(
        self,
        reference_number: str,
        succeeded: bool,
        amount: Decimal | int | str | None = None,
        failure_reason: str | None = None,
    ) -> tuple[WalletTransaction, bool]:
        """Resolve a pending transaction by its external reference.

        On success the live balance is credited and the pending record gets
        the real before/after snapshots. On failure the record becomes
        ``failed`` with no balance effect. A record that is no longer pending
        is returned unchanged.

        Returns:
            Tuple of (transaction, whether this call changed it)

        Raises:
            TransactionNotFoundError: Unknown reference
            ValidationError: Confirmed amount differs from the pending amount
        """
        if not reference_number:
            raise ValidationError("Reference number is required")

        pending = await self.store.get_transaction_by_reference(reference_number)
        if pending is None:
            raise TransactionNotFoundError(
                "Transaction not found", {"reference_number": reference_number}
            )
        if pending.status != TransactionStatus.PENDING:
            logger.info(
                f"Ignoring repeated settlement of {pending.transaction_no} "
                f"(already {pending.status.value})"
            )
            return pending, False

        if succeeded and amount is not None and to_amount(amount) != pending.amount:
            logger.warning(
                f"Settlement amount mismatch for {pending.transaction_no}: "
                f"expected {pending.amount}, got {amount}"
            )
            raise ValidationError(
                "Confirmed amount does not match the pending transaction",
                {"expected": str(pending.amount), "received": str(amount)},
            )

        async def work(unit: AccountUnit) -> tuple[WalletTransaction, bool]:
            txn = await unit.find_transaction(reference_number=reference_number)
            if txn is None:
                raise TransactionNotFoundError(
                    "Transaction not found", {"reference_number": reference_number}
                )
            if txn.status != TransactionStatus.PENDING:
                return txn, False

            now = utc_now()
            txn.updated_at = now
            if not succeeded:
                txn.status = TransactionStatus.FAILED
                if failure_reason:
                    txn.meta = {**(txn.meta or {}), "failure_reason": failure_reason}
                unit.record(None, txn)
                return txn, True

            before = unit.balance
            after = expected_balance_after(txn.type, before, txn.amount)
            txn.balance_before = before
            txn.balance_after = after
            txn.status = TransactionStatus.COMPLETED
            txn.completed_at = now
            unit.record(after, txn)
            return txn, True

        txn, applied = await self.store.run_atomic(pending.user_id, work)
        if applied and txn.status == TransactionStatus.COMPLETED:
            logger.info(
                f"Settled {txn.transaction_no} for user {txn.user_id}: "
                f"{txn.balance_before} -> {txn.balance_after}"
            )
        elif applied:
            logger.info(f"Marked {txn.transaction_no} failed for user {txn.user_id}")
        return txn, applied

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_balance(self, user_id: int) -> Decimal:
        """Point-in-time balance."""
        return await self.store.get_balance(_check_user_id(user_id))

    async def verify_balance(
        self, user_id: int, amount: Decimal | int | str
    ) -> BalanceCheckResponse:
        """Check whether the balance covers an amount."""
        amount = to_amount(amount)
        balance = await self.get_balance(user_id)
        has_balance = balance >= amount
        return BalanceCheckResponse(
            has_balance=has_balance,
            current_balance=balance,
            required_amount=amount,
            shortfall=Decimal("0") if has_balance else amount - balance,
        )

    async def list_transactions(
        self,
        user_id: int,
        params: TransactionQueryParams,
    ) -> tuple[list[WalletTransaction], int]:
        """Paginated history, newest first."""
        user_id = _check_user_id(user_id)
        if await self.store.get_account(user_id) is None:
            raise AccountNotFoundError(user_id)
        return await self.store.list_transactions(user_id, params)

    async def get_wallet_summary(self, user_id: int) -> WalletSummaryResponse:
        """Balance plus the most recent transactions."""
        balance = await self.get_balance(user_id)
        items, _ = await self.store.list_transactions(
            user_id, TransactionQueryParams(page=1, page_size=SUMMARY_RECENT_COUNT)
        )
        return WalletSummaryResponse(
            balance=balance,
            recent_transactions=[WalletTransactionResponse.model_validate(t) for t in items],
        )

    async def get_statistics(
        self,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> WalletStatsResponse:
        """Platform-wide statistics of completed transactions.

        Reads without account locks; the result is a snapshot.
        """
        if start_date and end_date and start_date > end_date:
            raise ValidationError("start_date must not be after end_date")

        by_type = await self.store.aggregate_by_type(start_date=start_date, end_date=end_date)
        balances = await self.store.balance_summary()

        return WalletStatsResponse(
            total_balance=balances.total_balance,
            users_with_balance=balances.users_with_balance,
            transaction_stats={
                txn_type.value: _type_stats(totals) for txn_type, totals in by_type.items()
            },
            summary=WalletStatsSummary(
                top_ups=_type_stats(by_type.get(TransactionType.TOP_UP)),
                payments=_type_stats(by_type.get(TransactionType.ORDER_PAYMENT)),
                refunds=_type_stats(by_type.get(TransactionType.REFUND)),
                bonuses=_type_stats(by_type.get(TransactionType.BONUS)),
                deductions=_type_stats(by_type.get(TransactionType.DEDUCTION)),
            ),
        )

    async def get_user_wallet(self, user_id: int) -> UserWalletResponse:
        """Admin view of one wallet: profile, per-type stats, recent history."""
        user_id = _check_user_id(user_id)
        user = await self.store.get_account(user_id)
        if user is None:
            raise AccountNotFoundError(user_id)

        by_type = await self.store.aggregate_by_type(user_id=user_id, status=None)
        recent, _ = await self.store.list_transactions(
            user_id, TransactionQueryParams(page=1, page_size=ADMIN_RECENT_COUNT)
        )

        return UserWalletResponse(
            user=WalletUserInfo.model_validate(user),
            stats_by_type={
                txn_type.value: _type_stats(totals) for txn_type, totals in by_type.items()
            },
            recent_transactions=[WalletTransactionResponse.model_validate(t) for t in recent],
        )

    async def search_users(self, query: str) -> list[User]:
        """Find users by name or phone (case-insensitive substring)."""
        query = (query or "").strip()
        if len(query) < SEARCH_MIN_LENGTH:
            raise ValidationError(
                f"Search query must be at least {SEARCH_MIN_LENGTH} characters"
            )
        return await self.store.search_accounts(query, limit=SEARCH_LIMIT)

