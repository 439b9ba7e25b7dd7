"""
Account service: the account store and account management logic.

This module handles:
  - IBAN generation and normalization
  - Account creation (used by user approval and house-account provisioning)
  - The account store used by the ledger engine: find_by_iban(),
    save_account(), save_accounts()
  - Actor-scoped retrieval (owner or employee)
  - Employee functions: account search and limit updates
  - The address book: finding a payee's PAYMENT account by name

Ownership enforcement:
  Functions that take an `actor` check it here, not in the router:
  a customer only ever sees accounts they own, an employee sees all.

IBAN format:
  Accounts are keyed by an IBAN-like identifier. Generated IBANs follow the
  Dutch layout: "NL" + 2 check digits + 4-letter bank code + 10 digits, with
  the ISO 13616 mod-97 check digits. They are stored compact and upper-case;
  every lookup normalizes its input the same way, so "nl91 yldb 0417 1643 00"
  finds "NL91YLDB0417164300".
"""

import random
import string
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import AccessDeniedError, AccountNotFoundError, NotAuthenticatedError
from app.models.account import Account, AccountStatus, AccountType
from app.models.user import User

IBAN_COUNTRY_CODE = "NL"


def normalize_iban(iban: str | None) -> str:
    """Strip all whitespace and upper-case; None becomes ""."""
    if iban is None:
        return ""
    return "".join(iban.split()).upper()


def _iban_check_digits(country_code: str, bban: str) -> str:
    """ISO 13616 check digits: 98 - (bban + country + "00") mod 97."""
    rearranged = f"{bban}{country_code}00"
    numeric = "".join(str(int(ch, 36)) for ch in rearranged)
    return f"{98 - int(numeric) % 97:02d}"


def _generate_iban(bank_code: str) -> str:
    """Generate a random, checksum-valid IBAN for the given bank code."""
    account_number = "".join(random.choices(string.digits, k=10))
    bban = f"{bank_code.upper()}{account_number}"
    return f"{IBAN_COUNTRY_CODE}{_iban_check_digits(IBAN_COUNTRY_CODE, bban)}{bban}"


# ---------------------------------------------------------------------------
# Account store
# ---------------------------------------------------------------------------

async def find_by_iban(
    db: AsyncSession,
    iban: str,
    for_update: bool = False,
) -> Account | None:
    """
    Look up an account by IBAN (normalized first).

    With for_update=True the row is locked (SELECT ... FOR UPDATE, a no-op on
    SQLite) and its attributes are refreshed from the database even if the
    object is already in the session, so the caller always sees the
    committed balance.
    """
    query = select(Account).where(Account.iban == normalize_iban(iban))
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def save_account(db: AsyncSession, account: Account) -> Account:
    db.add(account)
    await db.flush()
    return account


async def save_accounts(db: AsyncSession, accounts: list[Account]) -> list[Account]:
    db.add_all(accounts)
    await db.flush()
    return accounts


async def create_account(
    db: AsyncSession,
    owner_id,
    account_type: AccountType,
    daily_limit: Decimal,
    absolute_limit: Decimal,
    balance_limit: Decimal,
    balance: Decimal = Decimal("0.00"),
    bank_code: str | None = None,
) -> Account:
    """
    Create a new ACTIVE account with a freshly generated IBAN.

    Args:
        db: Database session.
        owner_id: The owning user's ID (None for an unowned account).
        account_type: PAYMENT or SAVINGS.
        daily_limit / absolute_limit / balance_limit: The account's limits.
        balance: Opening balance (zero for customer accounts).
        bank_code: Overrides settings.IBAN_BANK_CODE (used for the house
                   ATM account).

    Returns:
        The newly created Account instance.
    """
    bank_code = bank_code or settings.IBAN_BANK_CODE

    # Generate a unique IBAN (retry on collision, extremely unlikely)
    for _ in range(10):
        iban = _generate_iban(bank_code)
        existing = await db.execute(select(Account.id).where(Account.iban == iban))
        if existing.first() is None:
            break
    else:
        # This should effectively never happen with 10 random digits
        raise RuntimeError("Failed to generate a unique IBAN")

    account = Account(
        owner_id=owner_id,
        iban=iban,
        account_type=account_type,
        status=AccountStatus.ACTIVE,
        balance=balance,
        daily_limit=daily_limit,
        absolute_limit=absolute_limit,
        balance_limit=balance_limit,
    )
    return await save_account(db, account)


# ---------------------------------------------------------------------------
# Actor-scoped retrieval
# ---------------------------------------------------------------------------

async def get_account_for_actor(db: AsyncSession, actor: User | None, iban: str) -> Account:
    """
    Get a single account, verifying the actor may see it.

    Raises:
        NotAuthenticatedError: If there is no actor.
        AccountNotFoundError: If the account doesn't exist.
        AccessDeniedError: If the actor is neither owner nor employee.
    """
    if actor is None:
        raise NotAuthenticatedError()

    account = await find_by_iban(db, iban)
    if account is None:
        raise AccountNotFoundError(normalize_iban(iban))

    if not actor.owns_account(account) and not actor.is_employee:
        raise AccessDeniedError("You do not have permission to view this account")

    return account


async def get_accounts(db: AsyncSession, owner_id) -> list[Account]:
    """
    List all accounts belonging to one user.

    This is inherently scoped: only the owner's accounts are returned.
    """
    result = await db.execute(
        select(Account)
        .where(Account.owner_id == owner_id)
        .order_by(Account.account_type, Account.created_at)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Employee functions
# ---------------------------------------------------------------------------

async def search_accounts(
    db: AsyncSession,
    query: str | None = None,
    account_type: AccountType | None = None,
    status: AccountStatus | None = None,
    limit: int = 10,
    offset: int = 0,
) -> tuple[list[Account], int]:
    """
    Search accounts by IBAN fragment or owner name.

    Filters are combined with AND. The text query matches, case-insensitively,
    a substring of the IBAN (whitespace ignored) or the owner's first or
    last name.

    Returns:
        (page of accounts newest first, total number of matches)
    """
    if limit <= 0:
        limit = 10
    if offset < 0:
        offset = 0

    stmt = select(Account).outerjoin(User, Account.owner_id == User.id)

    if account_type is not None:
        stmt = stmt.where(Account.account_type == account_type)
    if status is not None:
        stmt = stmt.where(Account.status == status)

    text = (query or "").strip()
    if text:
        iban_fragment = normalize_iban(text)
        name_fragment = text.lower()
        stmt = stmt.where(
            or_(
                Account.iban.contains(iban_fragment, autoescape=True),
                func.lower(User.first_name).contains(name_fragment, autoescape=True),
                func.lower(User.last_name).contains(name_fragment, autoescape=True),
            )
        )

    total = await db.scalar(select(func.count()).select_from(stmt.subquery()))

    result = await db.execute(
        stmt.order_by(Account.created_at.desc(), Account.iban)
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total or 0


async def search_address_book(db: AsyncSession, query: str | None, limit: int = 50) -> list[Account]:
    """
    Find active PAYMENT accounts whose owner's name matches the query.

    Used by customers to find the IBAN of someone they want to pay. Only the
    owner's name and the IBAN are exposed by the router; balances never are.
    Savings accounts are excluded since they only accept self-transfers.
    """
    text = (query or "").strip().lower()
    if not text:
        return []

    full_name = func.lower(User.first_name + " " + User.last_name)
    result = await db.execute(
        select(Account)
        .join(User, Account.owner_id == User.id)
        .where(Account.account_type == AccountType.PAYMENT)
        .where(Account.status == AccountStatus.ACTIVE)
        .where(full_name.contains(text, autoescape=True))
        .order_by(User.last_name, User.first_name)
        .limit(limit)
    )
    return list(result.scalars().all())


async def update_limits(
    db: AsyncSession,
    iban: str,
    daily_limit: Decimal | None = None,
    absolute_limit: Decimal | None = None,
    balance_limit: Decimal | None = None,
) -> Account:
    """
    Change an account's limits. Fields left as None are not touched.

    Raises:
        AccountNotFoundError: If the account doesn't exist.
    """
    account = await find_by_iban(db, iban)
    if account is None:
        raise AccountNotFoundError(normalize_iban(iban))

    if daily_limit is not None:
        account.daily_limit = daily_limit
    if absolute_limit is not None:
        account.absolute_limit = absolute_limit
    if balance_limit is not None:
        account.balance_limit = balance_limit

    return await save_account(db, account)
