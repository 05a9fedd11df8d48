"""Pytest configuration and fixtures."""

import os

# Settings are read at import time by the app and Celery modules
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LEDGER_BACKEND", "memory")

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

from wallet_ledger.db.engine import build_engine  # noqa: E402
from wallet_ledger.models.user import User, UserRole  # noqa: E402
from wallet_ledger.models.wallet import TransactionType  # noqa: E402
from wallet_ledger.services import WalletService  # noqa: E402
from wallet_ledger.store.base import LedgerStore  # noqa: E402
from wallet_ledger.store.memory import InMemoryLedgerStore  # noqa: E402
from wallet_ledger.store.sql import SQLLedgerStore  # noqa: E402


async def create_sql_store(
    database_path, serialized: bool = True
) -> tuple[SQLLedgerStore, sessionmaker, object]:
    """Create a file-backed SQLite ledger store with all tables.

    With ``serialized=False`` the engine keeps the driver's lazy transactions,
    so concurrent writers only meet at the version check.
    """
    url = f"sqlite+aiosqlite:///{database_path}"
    engine = build_engine(url) if serialized else create_async_engine(url)
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    session_factory = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    return SQLLedgerStore(session_factory, max_retries=3), session_factory, engine


async def insert_account(store: LedgerStore, user: User) -> int:
    """Register an account with a zero balance in either store."""
    if isinstance(store, InMemoryLedgerStore):
        return store.add_account(user).id  # type: ignore[return-value]

    assert isinstance(store, SQLLedgerStore)
    async with store._session_factory() as session:
        session.add(user)
        await session.commit()
        return user.id  # type: ignore[return-value]


@pytest.fixture
def memory_store() -> InMemoryLedgerStore:
    """Fresh in-memory ledger store."""
    return InMemoryLedgerStore()


@pytest.fixture
async def sql_env(tmp_path):
    """SQL ledger store together with its session factory."""
    store, session_factory, engine = await create_sql_store(tmp_path / "wallet.db")
    yield store, session_factory
    await engine.dispose()


@pytest.fixture
async def unserialized_sql_env(tmp_path):
    """SQL ledger store whose SQLite transactions do not lock on begin."""
    store, session_factory, engine = await create_sql_store(
        tmp_path / "wallet.db", serialized=False
    )
    yield store, session_factory
    await engine.dispose()


@pytest.fixture(params=["memory", "sql"])
async def store(request, tmp_path):
    """Ledger store, once per backend."""
    if request.param == "memory":
        yield InMemoryLedgerStore()
        return

    sql_store, _, engine = await create_sql_store(tmp_path / "wallet.db")
    yield sql_store
    await engine.dispose()


@pytest.fixture
def wallet(store) -> WalletService:
    """Wallet service over the parametrized store."""
    return WalletService(store)


@pytest.fixture
def make_account(store):
    """Factory creating an account, optionally funded with a top-up."""

    async def _make(
        name: str = "Test User",
        phone: str | None = None,
        role: UserRole = UserRole.CUSTOMER,
        balance: Decimal | int | str | None = None,
    ) -> int:
        email = f"{name.lower().replace(' ', '.')}@example.com"
        user_id = await insert_account(
            store, User(name=name, phone=phone, email=email, role=role)
        )
        if balance:
            await WalletService(store).credit(
                user_id, balance, TransactionType.TOP_UP, "Initial balance"
            )
        return user_id

    return _make


@pytest.fixture
def api_store() -> InMemoryLedgerStore:
    """Store backing the API under test."""
    return InMemoryLedgerStore()


@pytest.fixture
async def client(api_store):
    """HTTP client for the app, with the ledger store overridden."""
    from wallet_ledger.main import app
    from wallet_ledger.store import get_ledger_store

    app.dependency_overrides[get_ledger_store] = lambda: api_store
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(api_store) -> dict[str, str]:
    """Headers of an admin user."""
    admin = api_store.add_account(User(name="Admin", role=UserRole.ADMIN))
    return {"X-User-Id": str(admin.id)}


@pytest.fixture
def customer(api_store) -> User:
    """A customer account with a zero balance."""
    return api_store.add_account(User(name="Alice Smith", phone="9876500001"))


@pytest.fixture
def customer_headers(customer) -> dict[str, str]:
    """Headers of the customer user."""
    return {"X-User-Id": str(customer.id)}
