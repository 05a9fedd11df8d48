"""Exception handlers translating wallet errors into JSON responses.

Body format: {"error": <code>, "message": <text>, "details": {...}}
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from wallet_ledger.core.exceptions import (
    AccountNotFoundError,
    BalanceIntegrityError,
    InsufficientBalanceError,
    InvalidStateError,
    NegativeBalanceGuardError,
    StorageFailure,
    TransactionNotFoundError,
    ValidationError,
    WalletError,
)

logger = logging.getLogger(__name__)

# Most specific classes first
ERROR_STATUS_CODES: list[tuple[type[WalletError], int]] = [
    (AccountNotFoundError, status.HTTP_404_NOT_FOUND),
    (TransactionNotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (InsufficientBalanceError, status.HTTP_402_PAYMENT_REQUIRED),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (NegativeBalanceGuardError, status.HTTP_409_CONFLICT),
    (StorageFailure, status.HTTP_503_SERVICE_UNAVAILABLE),
    (BalanceIntegrityError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_code_for(error: WalletError) -> int:
    """HTTP status code of a wallet error."""
    for error_class, code in ERROR_STATUS_CODES:
        if isinstance(error, error_class):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def wallet_error_handler(request: Request, exc: WalletError) -> JSONResponse:
    """Render a WalletError."""
    code = status_code_for(exc)
    if code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")

    return JSONResponse(
        status_code=code,
        content={"error": exc.code, "message": exc.message, "details": exc.details},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register wallet error handlers on the application."""
    app.add_exception_handler(WalletError, wallet_error_handler)
