#!/usr/bin/env python3
"""
Demo seed script: populates the database with sample data for demos.

!! NOT FOR PRODUCTION !!
This script creates users with known passwords and fake transfers. It is
intended ONLY for local demos and frontend development.

It talks to the database directly through the service layer, so the API
server does not need to be running. Point DATABASE_URL at the same
database the server uses (the default is ./data/bank.db).

Usage:
    python demo/seed.py

    # Delete the database file and re-seed:
    python demo/seed.py --reset

Login credentials after seeding:
    ┌──────────────────────────────┬───────────────────┬────────────┐
    │ Email                        │ Password          │ Role       │
    ├──────────────────────────────┼───────────────────┼────────────┤
    │ admin@yieldbank.com          │ AdminDemo123!     │ ADMIN      │
    │ employee@yieldbank.com       │ EmployeeDemo123!  │ EMPLOYEE   │
    │ alice.chen@example.com       │ AliceDemo123!     │ APPROVED   │
    │ bob.martinez@example.com     │ BobDemo123!       │ APPROVED   │
    │ carol.nguyen@example.com     │ CarolDemo123!     │ APPROVED   │
    │ dave.johnson@example.com     │ DaveDemo123!      │ UNAPPROVED │
    └──────────────────────────────┴───────────────────┴────────────┘
"""

import argparse
import asyncio
import os
import random
import sys
from decimal import Decimal
from pathlib import Path

# Make `app` importable when run as `python demo/seed.py`
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import select  # noqa: E402

from app.config import settings  # noqa: E402
from app.database import AsyncSessionLocal, Base, engine  # noqa: E402
from app.exceptions import BankAPIError  # noqa: E402
from app.models.account import AccountType  # noqa: E402
from app.models.user import User, UserRole  # noqa: E402
from app.services import auth_service, ledger_service, user_service  # noqa: E402

# ---------------------------------------------------------------------------
# Demo users
# ---------------------------------------------------------------------------

STAFF = [
    {
        "email": "admin@yieldbank.com",
        "password": "AdminDemo123!",
        "first_name": "Ada",
        "last_name": "Admin",
        "role": UserRole.ADMIN,
    },
    {
        "email": "employee@yieldbank.com",
        "password": "EmployeeDemo123!",
        "first_name": "Evan",
        "last_name": "Teller",
        "role": UserRole.EMPLOYEE,
    },
]

CUSTOMERS = [
    {
        "email": "alice.chen@example.com",
        "password": "AliceDemo123!",
        "first_name": "Alice",
        "last_name": "Chen",
        "cash_deposit": Decimal("850.00"),
        "savings": Decimal("300.00"),
    },
    {
        "email": "bob.martinez@example.com",
        "password": "BobDemo123!",
        "first_name": "Bob",
        "last_name": "Martinez",
        "cash_deposit": Decimal("1200.00"),
        "savings": Decimal("0.00"),
    },
    {
        "email": "carol.nguyen@example.com",
        "password": "CarolDemo123!",
        "first_name": "Carol",
        "last_name": "Nguyen",
        "cash_deposit": Decimal("3200.00"),
        "savings": Decimal("900.00"),
    },
]

# Signed up but left for an employee to approve
PENDING = {
    "email": "dave.johnson@example.com",
    "password": "DaveDemo123!",
    "first_name": "Dave",
    "last_name": "Johnson",
}

PAYMENT_DESCRIPTIONS = [
    "Dinner split", "Concert tickets", "Rent share", "Birthday present",
    "Groceries", "Taxi", "Holiday deposit", "Book club",
]

DAILY_LIMIT = Decimal("2500.00")
ABSOLUTE_LIMIT = Decimal("1000.00")
BALANCE_LIMIT = Decimal("-100.00")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def log(msg: str) -> None:
    print(f"  {msg}")


def euros(amount: Decimal) -> str:
    return f"EUR {amount:,.2f}"


async def create_user(session, user: dict, role: UserRole | None = None) -> User:
    created, _ = await auth_service.signup(
        session,
        email=user["email"],
        password=user["password"],
        first_name=user["first_name"],
        last_name=user["last_name"],
    )
    if role is not None:
        created.role = role
    await session.commit()
    return created


def random_amount(low: int, high: int) -> Decimal:
    return Decimal(random.randint(low * 100, high * 100)) / 100


# ---------------------------------------------------------------------------
# Seed logic
# ---------------------------------------------------------------------------

async def seed() -> None:
    print("\n========================================")
    print("  DEMO SEED: NOT FOR PRODUCTION")
    print("========================================\n")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        existing = await session.execute(select(User).where(User.email == STAFF[0]["email"]))
        if existing.scalar_one_or_none() is not None:
            print("  Database already seeded. Use --reset to start over.\n")
            return

        print("Provisioning house ATM account...")
        house_iban = await user_service.provision_house_account(session)
        await session.commit()
        log(f"House account: {house_iban}")

        print("\nCreating staff...")
        staff = []
        for member in STAFF:
            staff.append(await create_user(session, member, role=member["role"]))
            log(f"{member['role'].value}: {member['email']} / {member['password']}")
        employee = staff[1]

        # --- Customers ---
        payment_ibans: dict[str, str] = {}
        for customer in CUSTOMERS:
            name = f"{customer['first_name']} {customer['last_name']}"
            print(f"\nCreating {name}...")
            user = await create_user(session, customer)
            _, accounts = await user_service.approve_user(
                session,
                user.id,
                daily_limit=DAILY_LIMIT,
                absolute_limit=ABSOLUTE_LIMIT,
                balance_limit=BALANCE_LIMIT,
            )
            await session.commit()
            by_type = {account.account_type: account.iban for account in accounts}
            payment, savings = by_type[AccountType.PAYMENT], by_type[AccountType.SAVINGS]
            payment_ibans[name] = payment
            log(f"Login: {customer['email']} / {customer['password']}")
            log(f"  Payment account: {payment}")
            log(f"  Savings account: {savings}")

            # Cash in through the ATM, then move some of it to savings
            await ledger_service.atm_transaction(
                session, employee, payment, "DEPOSIT", customer["cash_deposit"], house_iban
            )
            log(f"  Cash deposit: {euros(customer['cash_deposit'])}")
            if customer["savings"] > 0:
                await ledger_service.transfer(
                    session, employee, payment, savings, customer["savings"], "Monthly savings"
                )
                log(f"  Moved to savings: {euros(customer['savings'])}")

        # --- Transfers between customers ---
        print("\nCreating transfers between customers...")
        names = list(payment_ibans)
        for _ in range(8):
            sender, receiver = random.sample(names, 2)
            amount = random_amount(5, 150)
            description = random.choice(PAYMENT_DESCRIPTIONS)
            try:
                await ledger_service.transfer(
                    session, employee, payment_ibans[sender], payment_ibans[receiver],
                    amount, description,
                )
            except BankAPIError as exc:
                log(f"{sender} -> {receiver}: {euros(amount)} rejected ({exc.error_type})")
                continue
            log(f"{sender} -> {receiver}: {euros(amount)} ({description})")

        # --- Pending customer ---
        print("\nCreating a customer waiting for approval...")
        await create_user(session, PENDING)
        log(f"Login: {PENDING['email']} / {PENDING['password']}")

    await engine.dispose()

    # --- Summary ---
    print("\n========================================")
    print("  SEED COMPLETE: Login Credentials")
    print("========================================")
    print(f"\n  {'Email':<30s} {'Password':<20s} {'Role'}")
    print(f"  {'─' * 30} {'─' * 20} {'─' * 10}")
    for member in STAFF:
        print(f"  {member['email']:<30s} {member['password']:<20s} {member['role'].value}")
    for customer in CUSTOMERS:
        print(f"  {customer['email']:<30s} {customer['password']:<20s} APPROVED")
    print(f"  {PENDING['email']:<30s} {PENDING['password']:<20s} UNAPPROVED")
    print()


def reset_database() -> None:
    """Delete the SQLite database file so the seed starts from empty tables."""
    url = engine.url
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        print(f"\n  --reset only supports SQLite files (DATABASE_URL={settings.DATABASE_URL})\n")
        sys.exit(1)

    db_path = os.path.normpath(url.database)
    if os.path.exists(db_path):
        os.remove(db_path)
        print(f"\n  Deleted {db_path}")
    else:
        print(f"\n  No database found at {db_path}")
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Demo seed script: NOT FOR PRODUCTION",
        epilog="Creates sample users, accounts, and transfers for demos.",
    )
    parser.add_argument(
        "--reset", action="store_true",
        help="Delete the SQLite database file before seeding",
    )
    args = parser.parse_args()

    if args.reset:
        reset_database()
    else:
        database = engine.url.database
        if engine.url.get_backend_name() == "sqlite" and database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)

    await seed()


if __name__ == "__main__":
    asyncio.run(main())
