"""Top-up Service - Payment gateway adapter around the wallet engine.

Flow:
1. ``initiate_topup`` opens a pending top_up with a fresh gateway reference
   and returns the hosted payment URL
2. The gateway calls back with the reference and a status
3. ``handle_callback`` settles the pending record: credited on SUCCESS,
   failed otherwise. Redelivered callbacks are no-ops.
"""

import logging
from decimal import Decimal

from wallet_ledger.core.config import Settings, get_settings
from wallet_ledger.core.exceptions import ValidationError
from wallet_ledger.core.security import verify_signature
from wallet_ledger.models.wallet import TransactionStatus, TransactionType
from wallet_ledger.schemas.wallet import (
    GatewayCallbackPayload,
    GatewayCallbackResponse,
    TopUpResponse,
)
from wallet_ledger.services.wallet_service import WalletService
from wallet_ledger.utils.helpers import timestamped_code, to_amount

logger = logging.getLogger(__name__)

GATEWAY_SUCCESS = "SUCCESS"
REFERENCE_PREFIX = "PH"


def generate_reference_number() -> str:
    """Generate gateway reference.

    Format: PH + epoch millis(13) + random(9)
    """
    return timestamped_code(REFERENCE_PREFIX)


class TopUpService:
    """Service for gateway top-ups."""

    def __init__(self, wallet: WalletService, settings: Settings | None = None):
        self.wallet = wallet
        self.settings = settings or get_settings()

    async def initiate_topup(self, user_id: int, amount: Decimal | int | str) -> TopUpResponse:
        """Open a pending top-up and build the payment URL.

        Raises:
            ValidationError: Amount outside the configured limits
            AccountNotFoundError: Account does not exist
        """
        amount = to_amount(amount)
        min_amount = self.settings.topup_min_amount
        max_amount = self.settings.topup_max_amount
        if amount < min_amount or amount > max_amount:
            raise ValidationError(
                f"Top-up amount must be between {min_amount} and {max_amount}",
                {"amount": str(amount), "min": str(min_amount), "max": str(max_amount)},
            )

        reference_number = generate_reference_number()
        txn = await self.wallet.open_pending(
            user_id,
            amount,
            reference_number=reference_number,
            description=f"Wallet top-up of {amount}",
            txn_type=TransactionType.TOP_UP,
            metadata={"gateway": "phonepe"},
        )

        return TopUpResponse(
            transaction_no=txn.transaction_no,
            reference_number=reference_number,
            amount=txn.amount,
            status=txn.status,
            payment_url=f"{self.settings.payment_gateway_url}?txn={reference_number}",
        )

    def verify_callback_signature(self, body: bytes, signature: str | None) -> bool:
        """Check the X-VERIFY checksum. Always passes when no salt is configured."""
        salt = self.settings.payment_gateway_salt
        if not salt:
            return True
        return verify_signature(body, signature, salt)

    async def handle_callback(self, payload: GatewayCallbackPayload) -> GatewayCallbackResponse:
        """Settle the pending top-up named by a gateway callback.

        Raises:
            TransactionNotFoundError: Unknown reference
            ValidationError: Callback amount differs from the pending amount
        """
        succeeded = payload.status.strip().upper() == GATEWAY_SUCCESS
        logger.info(
            f"Gateway callback for {payload.reference_number}: status={payload.status}"
        )

        txn, applied = await self.wallet.settle_pending(
            payload.reference_number,
            succeeded=succeeded,
            amount=payload.amount,
            failure_reason=None if succeeded else payload.status,
        )

        return GatewayCallbackResponse(
            transaction_no=txn.transaction_no,
            status=txn.status,
            amount=txn.amount,
            new_balance=txn.balance_after if txn.status == TransactionStatus.COMPLETED else None,
            processed=applied,
        )
