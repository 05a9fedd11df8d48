"""Common FastAPI dependencies for API endpoints.

Authentication happens upstream (API gateway); requests arrive with the
authenticated user's id in the ``X-User-Id`` header.
"""

from datetime import datetime
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Query, status

from wallet_ledger.core.exceptions import ValidationError
from wallet_ledger.models.user import User, UserRole
from wallet_ledger.models.wallet import TransactionStatus, TransactionType
from wallet_ledger.schemas.wallet import TransactionQueryParams
from wallet_ledger.services import ReconciliationService, TopUpService, WalletService
from wallet_ledger.store import LedgerStore, get_ledger_store


def get_wallet_service(
    store: Annotated[LedgerStore, Depends(get_ledger_store)],
) -> WalletService:
    """Get wallet service instance."""
    return WalletService(store)


def get_topup_service(
    wallet: Annotated[WalletService, Depends(get_wallet_service)],
) -> TopUpService:
    """Get top-up service instance."""
    return TopUpService(wallet)


def get_reconciliation_service(
    store: Annotated[LedgerStore, Depends(get_ledger_store)],
) -> ReconciliationService:
    """Get reconciliation service instance."""
    return ReconciliationService(store)


async def get_current_user(
    store: Annotated[LedgerStore, Depends(get_ledger_store)],
    x_user_id: Annotated[int | None, Header()] = None,
) -> User:
    """FastAPI dependency to get the authenticated user.

    Usage:
        @router.get("/balance")
        async def get_balance(user: CurrentUser):
            ...
    """
    if x_user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )

    user = await store.get_account(x_user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User not found or inactive",
        )
    return user


async def require_admin(
    user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Ensure the user is an admin."""
    if user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


# ============ Type Aliases for Common Dependencies ============

# Authenticated user
CurrentUser = Annotated[User, Depends(get_current_user)]

# Admin user
AdminUser = Annotated[User, Depends(require_admin)]

# Services
WalletServiceDep = Annotated[WalletService, Depends(get_wallet_service)]
TopUpServiceDep = Annotated[TopUpService, Depends(get_topup_service)]
ReconciliationServiceDep = Annotated[ReconciliationService, Depends(get_reconciliation_service)]


def get_transaction_filters(
    txn_type: TransactionType | None = Query(None, alias="type", description="Filter by type"),
    txn_status: TransactionStatus | None = Query(
        None, alias="status", description="Filter by status"
    ),
    start_date: datetime | None = Query(None, description="Filter by start date"),
    end_date: datetime | None = Query(None, description="Filter by end date"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Page size"),
) -> TransactionQueryParams:
    """Transaction history filters from the query string."""
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must not be after end_date")
    return TransactionQueryParams(
        type=txn_type,
        status=txn_status,
        start_date=start_date,
        end_date=end_date,
        page=page,
        page_size=page_size,
    )


TransactionFilters = Annotated[TransactionQueryParams, Depends(get_transaction_filters)]
