"""
Transaction service: the transaction store and transaction queries.

This module handles:
  - Persisting transaction rows (save_transaction / save_transactions),
    called only by the ledger engine
  - Lookups by id, by reference and by participating IBAN
  - The employee transaction search with filters and pagination

Money movement itself lives in ledger_service; nothing here changes a
balance, and nothing here updates or deletes a stored transaction.

Access-checked functions:
  Functions that take an `actor` enforce who may read what:
    - by id / by reference / search: employees only
    - by IBAN: the account's owner or an employee
  The router stays thin and only maps query parameters.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Literal

from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import (
    AccessDeniedError,
    AccountNotFoundError,
    NotAuthenticatedError,
    TransactionNotFoundError,
)
from app.models.account import Money
from app.models.transaction import Transaction
from app.models.user import User
from app.services.account_service import find_by_iban, normalize_iban

AmountOperator = Literal["lt", "gt", "eq"]

DEFAULT_PAGE_SIZE = 10


# ---------------------------------------------------------------------------
# Transaction store
# ---------------------------------------------------------------------------

async def save_transaction(db: AsyncSession, transaction: Transaction) -> Transaction:
    db.add(transaction)
    await db.flush()
    return transaction


async def save_transactions(db: AsyncSession, transactions: list[Transaction]) -> list[Transaction]:
    db.add_all(transactions)
    await db.flush()
    return transactions


async def get_by_id(db: AsyncSession, transaction_id: int) -> Transaction | None:
    result = await db.execute(select(Transaction).where(Transaction.id == transaction_id))
    return result.scalar_one_or_none()


async def find_by_reference(db: AsyncSession, reference: str) -> list[Transaction]:
    """
    Return every transaction carrying this reference.

    References are unique, so this is at most one row; a list keeps the
    response shape stable when nothing matches.
    """
    result = await db.execute(
        select(Transaction)
        .where(Transaction.reference == reference.strip())
        .order_by(Transaction.id)
    )
    return list(result.scalars().all())


async def find_by_participant_account(db: AsyncSession, iban: str) -> list[Transaction]:
    """Return every transaction where the IBAN is sender or receiver, newest first."""
    iban = normalize_iban(iban)
    result = await db.execute(
        select(Transaction)
        .where(or_(Transaction.from_account == iban, Transaction.to_account == iban))
        .order_by(Transaction.timestamp.desc(), Transaction.id.desc())
    )
    return list(result.scalars().all())


def _as_utc(value: datetime) -> datetime:
    # Naive datetimes are taken to be UTC already
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


async def search_transactions(
    db: AsyncSession,
    query: str | None = None,
    type_filter: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    amount: Decimal | None = None,
    amount_operator: AmountOperator | None = None,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> tuple[list[Transaction], int]:
    """
    Search all transactions.

    Every given filter must hold (AND):
      - query: case-insensitive substring of from_account, to_account,
        reference, description, or the numeric id
      - type_filter: transaction type, case-insensitive
      - start_date / end_date: inclusive bounds, each applied on its own
      - amount + amount_operator: compares abs(transfer_amount) with
        abs(amount) using "lt", "gt" or "eq"; both must be given

    Results are ordered by timestamp descending (rows without a timestamp
    last, ties broken by id descending) and then paginated.

    Args:
        limit: Page size; values <= 0 fall back to 10.
        offset: Rows to skip; negative values fall back to 0.

    Returns:
        (page of transactions, total number of matches before pagination)
    """
    if limit <= 0:
        limit = DEFAULT_PAGE_SIZE
    if offset < 0:
        offset = 0

    stmt = select(Transaction)

    text = (query or "").strip().lower()
    if text:
        stmt = stmt.where(
            or_(
                func.lower(Transaction.from_account).contains(text, autoescape=True),
                func.lower(Transaction.to_account).contains(text, autoescape=True),
                func.lower(Transaction.reference).contains(text, autoescape=True),
                func.lower(func.coalesce(Transaction.description, "")).contains(text, autoescape=True),
                cast(Transaction.id, String).contains(text, autoescape=True),
            )
        )

    if type_filter:
        stmt = stmt.where(
            func.upper(cast(Transaction.transaction_type, String)) == type_filter.strip().upper()
        )

    if start_date is not None:
        stmt = stmt.where(Transaction.timestamp >= _as_utc(start_date))
    if end_date is not None:
        stmt = stmt.where(Transaction.timestamp <= _as_utc(end_date))

    if amount is not None and amount_operator is not None:
        target = abs(amount)
        absolute = func.abs(Transaction.transfer_amount, type_=Money)
        if amount_operator == "lt":
            stmt = stmt.where(absolute < target)
        elif amount_operator == "gt":
            stmt = stmt.where(absolute > target)
        elif amount_operator == "eq":
            stmt = stmt.where(absolute == target)
        else:
            raise ValueError(f"Unsupported amount operator: {amount_operator}")

    total = await db.scalar(select(func.count()).select_from(stmt.subquery()))

    result = await db.execute(
        stmt.order_by(Transaction.timestamp.desc().nulls_last(), Transaction.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total or 0


# ---------------------------------------------------------------------------
# Access-checked queries
# ---------------------------------------------------------------------------

def _require_employee(actor: User | None) -> None:
    if actor is None:
        raise NotAuthenticatedError()
    if not actor.is_employee:
        raise AccessDeniedError("Only employees can view these transactions")


async def get_transaction_for_actor(db: AsyncSession, actor: User | None, transaction_id: int) -> Transaction:
    """
    Employee lookup of a single transaction.

    Raises:
        AccessDeniedError: If the actor is not an employee.
        TransactionNotFoundError: If no transaction has this id.
    """
    _require_employee(actor)
    transaction = await get_by_id(db, transaction_id)
    if transaction is None:
        raise TransactionNotFoundError(transaction_id)
    return transaction


async def get_transactions_by_reference(db: AsyncSession, actor: User | None, reference: str) -> list[Transaction]:
    _require_employee(actor)
    return await find_by_reference(db, reference)


async def get_transactions_by_iban(db: AsyncSession, actor: User | None, iban: str) -> list[Transaction]:
    """
    History of one account, for its owner or an employee.

    Raises:
        AccountNotFoundError: If the IBAN is unknown.
        AccessDeniedError: If a customer asks for someone else's account.
    """
    if actor is None:
        raise NotAuthenticatedError()

    account = await find_by_iban(db, iban)
    if account is None:
        raise AccountNotFoundError(normalize_iban(iban))
    if not actor.owns_account(account) and not actor.is_employee:
        raise AccessDeniedError("You do not have access to this account's transactions")

    return await find_by_participant_account(db, account.iban)
