"""Wallet API - Customer wallet endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Header, HTTPException, Request, status

from wallet_ledger.api.deps import (
    CurrentUser,
    TopUpServiceDep,
    TransactionFilters,
    WalletServiceDep,
)
from wallet_ledger.schemas.wallet import (
    BalanceCheckResponse,
    BalanceResponse,
    GatewayCallbackPayload,
    GatewayCallbackResponse,
    TopUpRequest,
    TopUpResponse,
    TransactionListResponse,
    VerifyBalanceRequest,
    WalletSummaryResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/wallet", tags=["Wallet"])


@router.get("", response_model=WalletSummaryResponse)
async def get_wallet(
    user: CurrentUser,
    service: WalletServiceDep,
) -> WalletSummaryResponse:
    """Get wallet balance and the 10 most recent transactions."""
    return await service.get_wallet_summary(user.id)


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    user: CurrentUser,
    service: WalletServiceDep,
) -> BalanceResponse:
    """Get current wallet balance."""
    balance = await service.get_balance(user.id)
    return BalanceResponse(user_id=user.id, balance=balance)


@router.get("/transactions", response_model=TransactionListResponse)
async def list_transactions(
    user: CurrentUser,
    service: WalletServiceDep,
    params: TransactionFilters,
) -> TransactionListResponse:
    """List own wallet transactions, newest first."""
    items, total = await service.list_transactions(user.id, params)

    return TransactionListResponse.for_page(items, total, params)


@router.post("/verify-balance", response_model=BalanceCheckResponse)
async def verify_balance(
    user: CurrentUser,
    data: VerifyBalanceRequest,
    service: WalletServiceDep,
) -> BalanceCheckResponse:
    """Check whether the balance covers an amount (e.g. before checkout)."""
    return await service.verify_balance(user.id, data.amount)


@router.post("/topup", response_model=TopUpResponse, status_code=status.HTTP_201_CREATED)
async def initiate_topup(
    user: CurrentUser,
    data: TopUpRequest,
    service: TopUpServiceDep,
) -> TopUpResponse:
    """Start a gateway top-up.

    Creates a pending top_up transaction and returns the payment URL.
    The balance is credited when the gateway confirms the payment.
    """
    return await service.initiate_topup(user.id, data.amount)


@router.post("/phonepe/callback", response_model=GatewayCallbackResponse)
async def phonepe_callback(
    request: Request,
    payload: GatewayCallbackPayload,
    service: TopUpServiceDep,
    x_verify: Annotated[str | None, Header()] = None,
) -> GatewayCallbackResponse:
    """Receive payment gateway confirmations.

    No user authentication; the X-VERIFY checksum is checked when a gateway
    salt is configured. Redelivered callbacks return ``processed=false``.
    """
    body = await request.body()
    if not service.verify_callback_signature(body, x_verify):
        logger.warning(
            f"Rejected gateway callback with invalid checksum: {payload.reference_number}"
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    return await service.handle_callback(payload)
