"""Wallet schemas - Request/Response DTOs for wallet operations."""

import math
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from wallet_ledger.models.wallet import TransactionStatus, TransactionType

# =============================================================================
# Transaction Schemas
# =============================================================================


class WalletTransactionResponse(BaseModel):
    """Wallet transaction response."""

    model_config = ConfigDict(from_attributes=True)

    transaction_no: str
    user_id: int
    type: TransactionType
    status: TransactionStatus
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    description: str
    metadata: dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("meta", "metadata")
    )
    reference_number: str | None = None
    reversed_transaction_id: int | None = None
    reversal_reason: str | None = None
    created_at: datetime
    completed_at: datetime | None = None


class TransactionListResponse(BaseModel):
    """Paginated transaction list response."""

    items: list[WalletTransactionResponse]
    total: int
    page: int
    page_size: int
    total_pages: int

    @classmethod
    def for_page(
        cls, items: list[Any], total: int, params: "TransactionQueryParams"
    ) -> "TransactionListResponse":
        """Build one history page. An empty history still has one page."""
        return cls(
            items=[WalletTransactionResponse.model_validate(txn) for txn in items],
            total=total,
            page=params.page,
            page_size=params.page_size,
            total_pages=math.ceil(total / params.page_size) if total > 0 else 1,
        )


class TransactionQueryParams(BaseModel):
    """History filters. All filters are combined with AND."""

    type: TransactionType | None = None
    status: TransactionStatus | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)

    @model_validator(mode="after")
    def check_date_range(self) -> "TransactionQueryParams":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


# =============================================================================
# Balance Schemas
# =============================================================================


class BalanceResponse(BaseModel):
    """Current balance response."""

    user_id: int
    balance: Decimal


class WalletSummaryResponse(BaseModel):
    """Balance plus the most recent transactions."""

    balance: Decimal
    recent_transactions: list[WalletTransactionResponse]


class VerifyBalanceRequest(BaseModel):
    """Request to check whether the balance covers an amount."""

    amount: Decimal = Field(gt=0, description="Amount needed")


class BalanceCheckResponse(BaseModel):
    """Balance verification result."""

    has_balance: bool
    current_balance: Decimal
    required_amount: Decimal
    shortfall: Decimal


# =============================================================================
# Top-up Schemas
# =============================================================================


class TopUpRequest(BaseModel):
    """Request to initiate a gateway top-up."""

    amount: Decimal = Field(gt=0, description="Top-up amount")


class TopUpResponse(BaseModel):
    """Initiated top-up with hosted payment URL."""

    transaction_no: str
    reference_number: str
    amount: Decimal
    status: TransactionStatus
    payment_url: str


class GatewayCallbackPayload(BaseModel):
    """Payment gateway callback body."""

    model_config = ConfigDict(populate_by_name=True)

    reference_number: str = Field(
        min_length=1,
        validation_alias=AliasChoices("phonepeTransactionId", "reference_number"),
    )
    status: str = Field(min_length=1, description="SUCCESS or a failure code")
    amount: Decimal | None = Field(default=None, gt=0)


class GatewayCallbackResponse(BaseModel):
    """Callback processing result."""

    transaction_no: str
    status: TransactionStatus
    amount: Decimal
    new_balance: Decimal | None = None
    processed: bool = Field(description="False when the callback was a redelivery")


# =============================================================================
# Admin Schemas
# =============================================================================


class WalletOperationRequest(BaseModel):
    """Generic credit/debit request."""

    user_id: int
    amount: Decimal = Field(gt=0)
    type: TransactionType
    description: str = Field(min_length=1, max_length=500)
    metadata: dict[str, Any] = Field(default_factory=dict)


class AddBonusRequest(BaseModel):
    """Request to add an admin bonus."""

    user_id: int
    amount: Decimal = Field(gt=0)
    description: str | None = Field(default=None, max_length=500)


class DeductRequest(BaseModel):
    """Request to deduct from a wallet."""

    user_id: int
    amount: Decimal = Field(gt=0)
    reason: str | None = Field(default=None, max_length=500)


class ReverseTransactionRequest(BaseModel):
    """Request to reverse a completed transaction."""

    reason: str = Field(min_length=1, max_length=500, description="Reason for reversal")


class WalletOperationResponse(BaseModel):
    """Result of an admin wallet operation."""

    transaction_no: str
    amount: Decimal
    new_balance: Decimal
    transaction: WalletTransactionResponse


class TypeStats(BaseModel):
    """Count and sum for one transaction type."""

    count: int = 0
    total_amount: Decimal = Decimal("0")


class WalletStatsSummary(BaseModel):
    """Headline figures per transaction type."""

    top_ups: TypeStats
    payments: TypeStats
    refunds: TypeStats
    bonuses: TypeStats
    deductions: TypeStats


class WalletStatsResponse(BaseModel):
    """Platform-wide wallet statistics."""

    total_balance: Decimal
    users_with_balance: int
    transaction_stats: dict[str, TypeStats]
    summary: WalletStatsSummary


class WalletUserInfo(BaseModel):
    """User profile fields shown on the admin wallet page."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str | None = None
    phone: str | None = None
    tier: str | None = None
    total_orders: int = 0
    total_spent: Decimal = Decimal("0")
    wallet_balance: Decimal


class UserWalletResponse(BaseModel):
    """Admin view of a single user's wallet."""

    user: WalletUserInfo
    stats_by_type: dict[str, TypeStats]
    recent_transactions: list[WalletTransactionResponse]


class UserSearchResult(BaseModel):
    """User search hit."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str | None = None
    phone: str | None = None
    wallet_balance: Decimal


class BalanceDiscrepancyResponse(BaseModel):
    """Account whose balance is not explained by its ledger."""

    model_config = ConfigDict(from_attributes=True)

    user_id: int
    balance: Decimal
    last_balance_after: Decimal | None
    ledger_sum: Decimal
    reasons: list[str]


class ReconciliationResponse(BaseModel):
    """Reconciliation run result."""

    accounts_checked: int
    discrepancies: list[BalanceDiscrepancyResponse]
