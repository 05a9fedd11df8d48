"""Wallet Ledger Service - Async database engine."""

from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from wallet_ledger.core.config import get_settings


def serialize_sqlite_writers(engine: AsyncEngine) -> None:
    """Start every SQLite transaction with ``BEGIN IMMEDIATE``.

    SQLite ignores ``SELECT ... FOR UPDATE``. Taking the database write lock
    when the transaction begins makes concurrent units of work on the same
    database run one after another, the way row locks do on MySQL.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        # Hand BEGIN over to the "begin" listener below
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the given URL.

    Connection pool sizing only applies to server databases (MySQL);
    SQLite URLs are used by tests and local tooling and get serialized writers.
    """
    kwargs: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
    is_sqlite = database_url.startswith("sqlite")
    if not is_sqlite:
        kwargs.update(pool_size=10, max_overflow=20)

    engine = create_async_engine(database_url, **kwargs)
    if is_sqlite:
        serialize_sqlite_writers(engine)
    return engine


# Create async engine
# Note: pool_pre_ping helps detect stale connections
engine = build_engine(get_settings().database_url, echo=get_settings().debug)

# Async session factory
async_session_factory = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db() -> None:
    """Initialize database - create all tables.

    Call this on application startup.
    """
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def close_db() -> None:
    """Close database connections.

    Call this on application shutdown.
    """
    await engine.dispose()
