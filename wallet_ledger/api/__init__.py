"""API module - route handlers and common dependencies."""

from fastapi import FastAPI

from wallet_ledger.api.deps import (
    AdminUser,
    CurrentUser,
)
from wallet_ledger.api.errors import register_exception_handlers

__all__ = [
    "AdminUser",
    "CurrentUser",
    "register_exception_handlers",
    "register_routers",
]


def register_routers(app: FastAPI) -> None:
    """Register all API routers to the application.

    Args:
        app: FastAPI application instance
    """
    # Customer wallet & gateway callbacks
    from wallet_ledger.api.wallet import router as wallet_router

    app.include_router(wallet_router, prefix="/api")

    # Admin wallet management
    from wallet_ledger.api.admin_wallet import router as admin_wallet_router

    app.include_router(admin_wallet_router, prefix="/api")
