"""
Database wiring for the YieldBank ledger.

  - engine: async engine built from DATABASE_URL (aiosqlite by default)
  - AsyncSessionLocal: session factory shared by the API, the startup hook
    that provisions the house ATM account, and demo/seed.py
  - Base: declarative base of the User, Account and Transaction models
  - get_db(): one session per request

Request sessions commit when the route returns and roll back when it
raises. Transfers and ATM operations do not wait for that commit: the
ledger service commits inside the per-account locks (see
app/services/ledger_service.py), so the request-level commit finds
nothing left to write for them.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from app.config import settings


# DEBUG=True echoes every statement, balances and hashes included
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
)

# Accounts and transactions are serialized after the ledger commits, so
# their attributes must stay loaded
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db():
    """
    Yield a session for one request.

    Profile edits, approvals and deletions are committed here; a rejected
    transfer raises before anything is written and is rolled back.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
