"""Database module - async engine and session management."""

from wallet_ledger.db.engine import (
    async_session_factory,
    build_engine,
    close_db,
    engine,
    init_db,
    serialize_sqlite_writers,
)

__all__ = [
    "engine",
    "build_engine",
    "serialize_sqlite_writers",
    "async_session_factory",
    "init_db",
    "close_db",
]
