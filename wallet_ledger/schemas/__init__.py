"""Schemas module - Pydantic DTOs for request/response."""

from wallet_ledger.schemas.wallet import (
    AddBonusRequest,
    BalanceCheckResponse,
    BalanceDiscrepancyResponse,
    BalanceResponse,
    DeductRequest,
    GatewayCallbackPayload,
    GatewayCallbackResponse,
    ReconciliationResponse,
    ReverseTransactionRequest,
    TopUpRequest,
    TopUpResponse,
    TransactionListResponse,
    TransactionQueryParams,
    TypeStats,
    UserSearchResult,
    UserWalletResponse,
    VerifyBalanceRequest,
    WalletOperationRequest,
    WalletOperationResponse,
    WalletStatsResponse,
    WalletStatsSummary,
    WalletSummaryResponse,
    WalletTransactionResponse,
    WalletUserInfo,
)

__all__: list[str] = [
    # Transactions
    "WalletTransactionResponse",
    "TransactionListResponse",
    "TransactionQueryParams",
    # Balance
    "BalanceResponse",
    "WalletSummaryResponse",
    "VerifyBalanceRequest",
    "BalanceCheckResponse",
    # Top-up
    "TopUpRequest",
    "TopUpResponse",
    "GatewayCallbackPayload",
    "GatewayCallbackResponse",
    # Admin
    "WalletOperationRequest",
    "AddBonusRequest",
    "DeductRequest",
    "ReverseTransactionRequest",
    "WalletOperationResponse",
    "TypeStats",
    "WalletStatsSummary",
    "WalletStatsResponse",
    "WalletUserInfo",
    "UserWalletResponse",
    "UserSearchResult",
    "BalanceDiscrepancyResponse",
    "ReconciliationResponse",
]
