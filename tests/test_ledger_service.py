"""
Service-level tests for the ledger engine.

These tests call ledger_service directly (no HTTP) to verify properties
that are hard to provoke through the API:

  - A failure while persisting rolls back everything: no transaction row,
    no balance change, and a LedgerCommitError
  - A rejected transfer leaves nothing pending in the session
  - Concurrent transfers from one account never overdraw it
  - Concurrent transfers in opposite directions neither deadlock nor lose
    money
  - A reference lost between the store check and the insert is redrawn
  - Ownership is checked again once the account locks are held
"""

import asyncio
from contextlib import asynccontextmanager
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from app.database import Base
from app.exceptions import (
    AccessDeniedError,
    AtmUserNotConfiguredError,
    InsufficientBalanceError,
    LedgerCommitError,
    NotAuthenticatedError,
)
from app.models.account import AccountType
from app.models.transaction import Transaction
from app.models.user import User, UserRole
from app.services import account_service, ledger_service, reference_generator, user_service


class TestCommitFailure:
    """Persistence failures after validation leave no partial state."""

    async def test_failure_while_updating_balances_rolls_back(
        self, db_session, make_user, get_balance, count_transactions, monkeypatch
    ):
        alice = await make_user(balance=Decimal("100.00"))
        bob = await make_user()
        actor = await user_service.get_user(db_session, alice.user_id)

        async def failing_save_accounts(db, accounts):
            raise SQLAlchemyError("disk I/O error")

        monkeypatch.setattr(account_service, "save_accounts", failing_save_accounts)

        with pytest.raises(LedgerCommitError) as exc_info:
            await ledger_service.transfer(
                db_session, actor, alice.payment_iban, bob.payment_iban, Decimal("40.00")
            )

        assert exc_info.value.status_code == 500
        assert await count_transactions() == 0
        assert await get_balance(alice.payment_iban) == Decimal("100.00")
        assert await get_balance(bob.payment_iban) == Decimal("0.00")

    async def test_commit_failure_is_reported_over_http(
        self, client, make_user, get_balance, count_transactions, monkeypatch
    ):
        alice = await make_user(balance=Decimal("100.00"))
        bob = await make_user()

        async def failing_save_transaction(db, transaction):
            raise SQLAlchemyError("constraint failed")

        monkeypatch.setattr(
            ledger_service.transaction_service, "save_transaction", failing_save_transaction
        )

        response = await client.post(
            "/transactions",
            json={
                "from_account": alice.payment_iban,
                "to_account": bob.payment_iban,
                "transfer_amount": "40.00",
            },
            headers=alice.headers,
        )

        assert response.status_code == 500
        assert response.json()["error_type"] == "internal_error"
        assert await count_transactions() == 0
        assert await get_balance(alice.payment_iban) == Decimal("100.00")


class TestRejectionPurity:
    async def test_rejected_transfer_leaves_session_clean(self, db_session, make_user):
        alice = await make_user(balance=Decimal("10.00"))
        bob = await make_user()
        actor = await user_service.get_user(db_session, alice.user_id)

        with pytest.raises(InsufficientBalanceError):
            await ledger_service.transfer(
                db_session, actor, alice.payment_iban, bob.payment_iban, Decimal("20.00")
            )

        assert not db_session.new
        assert not db_session.dirty
        count = await db_session.scalar(select(func.count()).select_from(Transaction))
        assert count == 0

    async def test_missing_actor(self, db_session):
        with pytest.raises(NotAuthenticatedError):
            await ledger_service.transfer(
                db_session, None, "NL00YLDB0000000001", "NL00YLDB0000000002", Decimal("1.00")
            )


class TestAtmConfiguration:
    async def test_house_account_not_provisioned(self, db_session, make_user):
        alice = await make_user(balance=Decimal("10.00"))
        actor = await user_service.get_user(db_session, alice.user_id)

        with pytest.raises(AtmUserNotConfiguredError):
            await ledger_service.atm_transaction(
                db_session, actor, alice.payment_iban, "DEPOSIT", Decimal("5.00"), None
            )

    async def test_house_account_iban_points_nowhere(self, db_session, make_user):
        alice = await make_user(balance=Decimal("10.00"))
        actor = await user_service.get_user(db_session, alice.user_id)

        with pytest.raises(AtmUserNotConfiguredError):
            await ledger_service.atm_transaction(
                db_session, actor, alice.payment_iban, "DEPOSIT", Decimal("5.00"),
                "NL00ATMS0000000000",
            )

    async def test_provisioning_is_idempotent(self, db_session):
        first = await user_service.provision_house_account(db_session)
        second = await user_service.provision_house_account(db_session)

        assert first == second
        house = await account_service.find_by_iban(db_session, first)
        house_user = (
            await db_session.execute(select(User).where(User.role == UserRole.ATM))
        ).scalar_one()
        assert house.balance == Decimal("999999999.99")
        assert house.owner_id == house_user.id
        assert house_user.is_active is False


# ---------------------------------------------------------------------------
# Concurrency (file-backed SQLite: every session gets its own connection)
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


async def create_customer(factory, name: str, balance: Decimal) -> tuple[User, str]:
    async with factory() as session:
        user = User(
            email=f"{name.lower()}@example.com",
            hashed_password="not-a-real-hash",
            first_name=name,
            last_name="Concurrent",
            role=UserRole.APPROVED,
        )
        session.add(user)
        await session.flush()
        account = await account_service.create_account(
            session,
            owner_id=user.id,
            account_type=AccountType.PAYMENT,
            daily_limit=Decimal("1000.00"),
            absolute_limit=Decimal("1000.00"),
            balance_limit=Decimal("0.00"),
            balance=balance,
        )
        await session.commit()
        return user, account.iban


async def read_balance(factory, iban: str) -> Decimal:
    async with factory() as session:
        return (await account_service.find_by_iban(session, iban)).balance


class TestConcurrency:
    async def test_concurrent_transfers_never_overdraw(self, file_session_factory):
        """Five transfers of 30 race for a balance of 100: exactly three win."""
        alice, alice_iban = await create_customer(file_session_factory, "Alice", Decimal("100.00"))
        _, bob_iban = await create_customer(file_session_factory, "Bob", Decimal("0.00"))

        async def attempt():
            async with file_session_factory() as session:
                return await ledger_service.transfer(
                    session, alice, alice_iban, bob_iban, Decimal("30.00")
                )

        results = await asyncio.gather(*(attempt() for _ in range(5)), return_exceptions=True)

        accepted = [r for r in results if isinstance(r, Transaction)]
        rejected = [r for r in results if isinstance(r, InsufficientBalanceError)]
        assert len(accepted) == 3
        assert len(rejected) == 2
        assert len({t.reference for t in accepted}) == 3

        assert await read_balance(file_session_factory, alice_iban) == Decimal("10.00")
        assert await read_balance(file_session_factory, bob_iban) == Decimal("90.00")

    async def test_opposite_directions_conserve_money(self, file_session_factory):
        alice, alice_iban = await create_customer(file_session_factory, "Alice", Decimal("500.00"))
        bob, bob_iban = await create_customer(file_session_factory, "Bob", Decimal("500.00"))

        async def send(actor, source, destination, amount):
            async with file_session_factory() as session:
                return await ledger_service.transfer(session, actor, source, destination, amount)

        jobs = []
        for _ in range(4):
            jobs.append(send(alice, alice_iban, bob_iban, Decimal("25.00")))
            jobs.append(send(bob, bob_iban, alice_iban, Decimal("10.00")))
        results = await asyncio.wait_for(asyncio.gather(*jobs), timeout=30)

        assert all(isinstance(r, Transaction) for r in results)
        alice_balance = await read_balance(file_session_factory, alice_iban)
        bob_balance = await read_balance(file_session_factory, bob_iban)
        assert alice_balance == Decimal("440.00")
        assert bob_balance == Decimal("560.00")
        assert alice_balance + bob_balance == Decimal("1000.00")


class TestReferenceCollision:
    """A reference taken between the store check and the insert is redrawn."""

    async def test_lost_reference_race_is_retried(self, file_session_factory, monkeypatch):
        alice, alice_iban = await create_customer(file_session_factory, "Alice", Decimal("100.00"))
        _, bob_iban = await create_customer(file_session_factory, "Bob", Decimal("0.00"))
        carol, carol_iban = await create_customer(file_session_factory, "Carol", Decimal("100.00"))
        _, dave_iban = await create_customer(file_session_factory, "Dave", Decimal("0.00"))

        async with file_session_factory() as session:
            first = await ledger_service.transfer(
                session, alice, alice_iban, bob_iban, Decimal("10.00")
            )

        # The first draw returns the reference stored above, as if another
        # transfer had inserted it right after the store check
        real_unique_reference = reference_generator.unique_reference
        draws = []

        async def colliding_unique_reference(db, transaction_id=None):
            draws.append(db)
            if len(draws) == 1:
                return first.reference
            return await real_unique_reference(db, transaction_id)

        monkeypatch.setattr(ledger_service, "unique_reference", colliding_unique_reference)

        async with file_session_factory() as session:
            second = await ledger_service.transfer(
                session, carol, carol_iban, dave_iban, Decimal("25.00")
            )

        assert len(draws) == 2
        assert second.reference != first.reference
        assert await read_balance(file_session_factory, carol_iban) == Decimal("75.00")
        assert await read_balance(file_session_factory, dave_iban) == Decimal("25.00")
        assert await read_balance(file_session_factory, alice_iban) == Decimal("90.00")

        async with file_session_factory() as session:
            references = (await session.scalars(select(Transaction.reference))).all()
        assert sorted(references) == sorted([first.reference, second.reference])

    async def test_repeated_collisions_give_up(self, file_session_factory, monkeypatch):
        alice, alice_iban = await create_customer(file_session_factory, "Alice", Decimal("100.00"))
        _, bob_iban = await create_customer(file_session_factory, "Bob", Decimal("0.00"))

        async with file_session_factory() as session:
            first = await ledger_service.transfer(
                session, alice, alice_iban, bob_iban, Decimal("10.00")
            )

        async def always_taken(db, transaction_id=None):
            return first.reference

        monkeypatch.setattr(ledger_service, "unique_reference", always_taken)

        async with file_session_factory() as session:
            with pytest.raises(LedgerCommitError):
                await ledger_service.transfer(
                    session, alice, alice_iban, bob_iban, Decimal("10.00")
                )

        assert await read_balance(file_session_factory, alice_iban) == Decimal("90.00")
        assert await read_balance(file_session_factory, bob_iban) == Decimal("10.00")

    async def test_transfers_on_disjoint_pairs_get_distinct_references(
        self, file_session_factory, monkeypatch
    ):
        """Every candidate is drawn twice; both pairs still commit every transfer."""
        alice, alice_iban = await create_customer(file_session_factory, "Alice", Decimal("500.00"))
        _, bob_iban = await create_customer(file_session_factory, "Bob", Decimal("0.00"))
        carol, carol_iban = await create_customer(file_session_factory, "Carol", Decimal("500.00"))
        _, dave_iban = await create_customer(file_session_factory, "Dave", Decimal("0.00"))

        draws = iter(range(1000))
        monkeypatch.setattr(
            reference_generator, "generate_reference", lambda *args: f"TR{next(draws) // 2}"
        )

        results = []
        for _ in range(5):
            for actor, source, destination in (
                (alice, alice_iban, bob_iban),
                (carol, carol_iban, dave_iban),
            ):
                async with file_session_factory() as session:
                    results.append(
                        await ledger_service.transfer(
                            session, actor, source, destination, Decimal("20.00")
                        )
                    )

        assert len({t.reference for t in results}) == 10
        assert await read_balance(file_session_factory, bob_iban) == Decimal("100.00")
        assert await read_balance(file_session_factory, dave_iban) == Decimal("100.00")


class TestOwnershipUnderLock:
    async def test_owner_removed_while_waiting_for_locks(self, file_session_factory, monkeypatch):
        """A customer deleted before the locks are taken cannot move the money."""
        alice, alice_iban = await create_customer(file_session_factory, "Alice", Decimal("100.00"))
        _, bob_iban = await create_customer(file_session_factory, "Bob", Decimal("0.00"))

        real_lock_accounts = ledger_service.lock_accounts

        @asynccontextmanager
        async def lock_after_deletion(*ibans):
            async with file_session_factory() as other:
                await user_service.delete_user(other, alice.id)
                await other.commit()
            async with real_lock_accounts(*ibans):
                yield

        monkeypatch.setattr(ledger_service, "lock_accounts", lock_after_deletion)

        async with file_session_factory() as session:
            with pytest.raises(AccessDeniedError):
                await ledger_service.transfer(
                    session, alice, alice_iban, bob_iban, Decimal("40.00")
                )

        assert await read_balance(file_session_factory, alice_iban) == Decimal("100.00")
        assert await read_balance(file_session_factory, bob_iban) == Decimal("0.00")
        async with file_session_factory() as session:
            count = await session.scalar(select(func.count()).select_from(Transaction))
        assert count == 0
