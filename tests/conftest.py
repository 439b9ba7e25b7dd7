"""
Test fixtures for the bank ledger API test suite.

This module provides shared fixtures used across all test files:

  - db_engine / session_factory / db_session: Fresh in-memory SQLite
    database for each test
  - client: Async HTTP test client (unauthenticated)
  - house_account: Provisions the house ATM account and injects its IBAN
    the same way the application lifespan does
  - make_user: Factory that signs a user up through the real endpoint,
    optionally approves them (opening PAYMENT + SAVINGS accounts) or gives
    them another role, and returns their auth headers and IBANs
  - get_balance / count_transactions: Read-back helpers using a fresh session

Key design decisions:
  - In-memory SQLite (sqlite+aiosqlite://) is used for speed and isolation.
    Each test gets a completely fresh database: no state leaks between tests.
  - We override FastAPI's get_db dependency to inject our test sessions,
    so the application code works exactly as it does in production.
  - Roles other than UNAPPROVED are set directly in the database, the way
    an operator would provision employees. Approval goes through the
    service layer so customers get real accounts with real IBANs.
"""

import itertools
import os
import uuid
from dataclasses import dataclass
from decimal import Decimal

# Settings require a secret; set one before the app is imported
os.environ.setdefault("SECRET_KEY", "test-secret-key-do-not-use-in-production")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from app.database import Base, get_db
from app.main import app
from app.models.transaction import Transaction
from app.models.user import UserRole
from app.services import account_service, user_service


# In-memory SQLite for fast, isolated tests
TEST_DATABASE_URL = "sqlite+aiosqlite://"

PASSWORD = "SecurePass123!"


@dataclass
class BankUser:
    """A user created by the make_user fixture."""
    user_id: uuid.UUID
    email: str
    headers: dict
    payment_iban: str | None = None
    savings_iban: str | None = None


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables for each test."""
    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Provide an async session bound to the test engine."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    """
    Async HTTP test client with the test database injected.

    This overrides the get_db dependency so all requests hit the
    in-memory test database instead of the real one. The house account
    starts out unconfigured; use the house_account fixture to provision it.
    """

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.state.house_account_iban = None

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
    app.state.house_account_iban = None


@pytest_asyncio.fixture
async def house_account(client, session_factory):
    """Provision the house ATM account and return its IBAN."""
    async with session_factory() as session:
        iban = await user_service.provision_house_account(session)
        await session.commit()
    app.state.house_account_iban = iban
    return iban


@pytest.fixture
def make_user(client, session_factory):
    """
    Factory fixture: `await make_user(...)` returns a BankUser.

    role=APPROVED (default) approves the user, which opens a PAYMENT and a
    SAVINGS account with the given limits; the balances are then set
    directly. Any other role is written to the user row as is.
    """
    counter = itertools.count(1)

    async def _make_user(
        role: UserRole = UserRole.APPROVED,
        first_name: str = "Test",
        last_name: str | None = None,
        balance: Decimal = Decimal("0.00"),
        savings_balance: Decimal = Decimal("0.00"),
        daily_limit: Decimal = Decimal("1000.00"),
        absolute_limit: Decimal = Decimal("1000.00"),
        balance_limit: Decimal = Decimal("0.00"),
    ) -> BankUser:
        n = next(counter)
        email = f"user{n}@example.com"
        response = await client.post(
            "/auth/signup",
            json={
                "email": email,
                "password": PASSWORD,
                "first_name": first_name,
                "last_name": last_name or f"User{n}",
            },
        )
        assert response.status_code == 201, f"Signup failed: {response.text}"
        body = response.json()
        bank_user = BankUser(
            user_id=uuid.UUID(body["user_id"]),
            email=email,
            headers={"Authorization": f"Bearer {body['token']}"},
        )

        async with session_factory() as session:
            if role == UserRole.APPROVED:
                _, (payment, savings) = await user_service.approve_user(
                    session,
                    bank_user.user_id,
                    daily_limit=daily_limit,
                    absolute_limit=absolute_limit,
                    balance_limit=balance_limit,
                )
                payment.balance = balance
                savings.balance = savings_balance
                bank_user.payment_iban = payment.iban
                bank_user.savings_iban = savings.iban
            elif role != UserRole.UNAPPROVED:
                user = await user_service.get_user(session, bank_user.user_id)
                user.role = role
            await session.commit()

        return bank_user

    return _make_user


@pytest.fixture
def get_balance(session_factory):
    """`await get_balance(iban)` reads the committed balance of an account."""

    async def _get_balance(iban: str) -> Decimal:
        async with session_factory() as session:
            account = await account_service.find_by_iban(session, iban)
            return account.balance

    return _get_balance


@pytest.fixture
def count_transactions(session_factory):
    """`await count_transactions()` counts every stored transaction row."""

    async def _count() -> int:
        async with session_factory() as session:
            return await session.scalar(select(func.count()).select_from(Transaction))

    return _count


@pytest.fixture
def set_account(session_factory):
    """`await set_account(iban, balance=..., ...)` overwrites account columns."""

    async def _set_account(iban: str, **values) -> None:
        async with session_factory() as session:
            account = await account_service.find_by_iban(session, iban)
            for name, value in values.items():
                setattr(account, name, value)
            await session.commit()

    return _set_account
