"""Admin Wallet API - Wallet management endpoints (admin only)."""

from datetime import datetime

from fastapi import APIRouter, Query

from wallet_ledger.api.deps import (
    AdminUser,
    ReconciliationServiceDep,
    TransactionFilters,
    WalletServiceDep,
)
from wallet_ledger.core.exceptions import ValidationError
from wallet_ledger.models.wallet import WalletTransaction
from wallet_ledger.schemas.wallet import (
    AddBonusRequest,
    BalanceDiscrepancyResponse,
    DeductRequest,
    ReconciliationResponse,
    ReverseTransactionRequest,
    TransactionListResponse,
    UserSearchResult,
    UserWalletResponse,
    WalletOperationRequest,
    WalletOperationResponse,
    WalletStatsResponse,
    WalletTransactionResponse,
)

router = APIRouter(prefix="/admin/wallet", tags=["Admin Wallet"])


def _operation_response(txn: WalletTransaction) -> WalletOperationResponse:
    return WalletOperationResponse(
        transaction_no=txn.transaction_no,
        amount=txn.amount,
        new_balance=txn.balance_after,
        transaction=WalletTransactionResponse.model_validate(txn),
    )


# =============================================================================
# User Wallets
# =============================================================================


@router.get("/users/{user_id}", response_model=UserWalletResponse)
async def get_user_wallet(
    user_id: int,
    admin: AdminUser,
    service: WalletServiceDep,
) -> UserWalletResponse:
    """Get a user's wallet: profile, per-type stats and 20 recent transactions."""
    return await service.get_user_wallet(user_id)


@router.get("/users/{user_id}/transactions", response_model=TransactionListResponse)
async def list_user_transactions(
    user_id: int,
    admin: AdminUser,
    service: WalletServiceDep,
    params: TransactionFilters,
) -> TransactionListResponse:
    """List a user's wallet transactions, newest first."""
    items, total = await service.list_transactions(user_id, params)

    return TransactionListResponse.for_page(items, total, params)


@router.get("/search", response_model=list[UserSearchResult])
async def search_users(
    admin: AdminUser,
    service: WalletServiceDep,
    query: str = Query("", description="Name or phone (at least 2 characters)"),
) -> list[UserSearchResult]:
    """Search users by name or phone (max 10 results)."""
    users = await service.search_users(query)
    return [UserSearchResult.model_validate(user) for user in users]


# =============================================================================
# Balance Operations
# =============================================================================


@router.post("/credit", response_model=WalletOperationResponse)
async def credit_wallet(
    data: WalletOperationRequest,
    admin: AdminUser,
    service: WalletServiceDep,
) -> WalletOperationResponse:
    """Credit a wallet (top_up, refund or bonus)."""
    txn = await service.credit(
        data.user_id,
        data.amount,
        data.type,
        data.description,
        {**data.metadata, "admin_id": admin.id},
    )
    return _operation_response(txn)


@router.post("/debit", response_model=WalletOperationResponse)
async def debit_wallet(
    data: WalletOperationRequest,
    admin: AdminUser,
    service: WalletServiceDep,
) -> WalletOperationResponse:
    """Debit a wallet (order_payment or deduction).

    Fails with 402 when the balance does not cover the amount.
    """
    txn = await service.debit(
        data.user_id,
        data.amount,
        data.type,
        data.description,
        {**data.metadata, "admin_id": admin.id},
    )
    return _operation_response(txn)


@router.post("/add-bonus", response_model=WalletOperationResponse)
async def add_bonus(
    data: AddBonusRequest,
    admin: AdminUser,
    service: WalletServiceDep,
) -> WalletOperationResponse:
    """Add a bonus to a wallet."""
    txn = await service.add_bonus(data.user_id, data.amount, admin.id, data.description)
    return _operation_response(txn)


@router.post("/deduct", response_model=WalletOperationResponse)
async def deduct(
    data: DeductRequest,
    admin: AdminUser,
    service: WalletServiceDep,
) -> WalletOperationResponse:
    """Deduct from a wallet."""
    txn = await service.deduct(data.user_id, data.amount, admin.id, data.reason)
    return _operation_response(txn)


@router.post("/transactions/{transaction_no}/reverse", response_model=WalletOperationResponse)
async def reverse_transaction(
    transaction_no: str,
    data: ReverseTransactionRequest,
    admin: AdminUser,
    service: WalletServiceDep,
) -> WalletOperationResponse:
    """Reverse a completed transaction.

    Fails with 409 when the transaction is not completed or the reversal
    would make the balance negative; such cases need manual review.
    """
    txn = await service.reverse(transaction_no, data.reason, operator_id=admin.id)
    return _operation_response(txn)


# =============================================================================
# Reporting
# =============================================================================


@router.get("/stats", response_model=WalletStatsResponse)
async def get_wallet_stats(
    admin: AdminUser,
    service: WalletServiceDep,
    start_date: datetime | None = Query(None, description="Filter by start date"),
    end_date: datetime | None = Query(None, description="Filter by end date"),
) -> WalletStatsResponse:
    """Platform-wide wallet statistics of completed transactions."""
    return await service.get_statistics(start_date=start_date, end_date=end_date)


@router.get("/reconcile", response_model=ReconciliationResponse)
async def reconcile_balances(
    admin: AdminUser,
    service: ReconciliationServiceDep,
    user_id: int | None = Query(None, description="Audit a single user"),
) -> ReconciliationResponse:
    """Audit balances against the transaction ledger."""
    if user_id is not None:
        if user_id <= 0:
            raise ValidationError("Invalid user id", {"user_id": user_id})
        discrepancy = await service.audit_account(user_id)
        discrepancies = [discrepancy] if discrepancy else []
        accounts_checked = 1
    else:
        report = await service.audit()
        discrepancies = report.discrepancies
        accounts_checked = report.accounts_checked

    return ReconciliationResponse(
        accounts_checked=accounts_checked,
        discrepancies=[BalanceDiscrepancyResponse.model_validate(item) for item in discrepancies],
    )
