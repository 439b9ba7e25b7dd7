"""
User service: profile lookup, approval, deletion and the house ATM user.

Approval:
  An employee approves an UNAPPROVED customer. The role becomes APPROVED and
  exactly two accounts are opened for them, a PAYMENT and a SAVINGS account,
  both with zero balance and the limits supplied by the employee.

Deletion:
  Users are hard-deleted, accounts never are. Every account the user owned
  is deactivated and detached from its owner first, so its IBAN and its
  transaction history stay valid.

Profile updates:
  Users edit their own profile; employees edit anyone's and may change
  roles. Email and password changes go through the same normalization and
  hashing as signup.

House ATM user:
  Cash deposits and withdrawals need a counterparty account. At startup
  provision_house_account() makes sure an inactive ATM-role user with one
  well-funded PAYMENT account exists and returns that account's IBAN.
"""

import logging
import secrets
import uuid
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import (
    AccessDeniedError,
    DuplicateEmailError,
    NotAuthenticatedError,
    UserAlreadyApprovedError,
    UserNotFoundError,
)
from app.models.account import Account, AccountType
from app.models.user import User, UserRole
from app.security import hash_password
from app.services import account_service

logger = logging.getLogger(__name__)


async def get_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    """
    Raises:
        UserNotFoundError: If no user has this id.
    """
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise UserNotFoundError(user_id)
    return user


async def get_user_for_actor(db: AsyncSession, actor: User | None, user_id: uuid.UUID) -> User:
    """A user may see their own profile; employees may see anyone's."""
    if actor is None:
        raise NotAuthenticatedError()
    if actor.id != user_id and not actor.is_employee:
        raise AccessDeniedError("You can only view your own profile")
    return await get_user(db, user_id)


async def search_users(
    db: AsyncSession,
    query: str | None = None,
    role: UserRole | None = None,
    limit: int = 10,
    offset: int = 0,
) -> tuple[list[User], int]:
    """
    Employee search over users by name or email fragment and role.

    The house ATM user is never listed.
    """
    if limit <= 0:
        limit = 10
    if offset < 0:
        offset = 0

    stmt = select(User).where(User.role != UserRole.ATM)

    if role is not None:
        stmt = stmt.where(User.role == role)

    text = (query or "").strip().lower()
    if text:
        stmt = stmt.where(
            or_(
                func.lower(User.first_name).contains(text, autoescape=True),
                func.lower(User.last_name).contains(text, autoescape=True),
                func.lower(User.email).contains(text, autoescape=True),
            )
        )

    total = await db.scalar(select(func.count()).select_from(stmt.subquery()))
    result = await db.execute(
        stmt.order_by(User.created_at.desc(), User.email).limit(limit).offset(offset)
    )
    return list(result.scalars().all()), total or 0


async def update_user(db: AsyncSession, actor: User | None, user_id: uuid.UUID, changes: dict) -> User:
    """
    Apply a partial profile update.

    A user may update their own profile; employees may update anyone's.
    Only the keys present in `changes` are applied. Emails are normalized
    and must stay unique, and a new password is hashed before storing.

    Roles:
      Only employees may change a role. ATM is never assignable and the
      house ATM user cannot be edited. An UNAPPROVED customer becomes
      APPROVED only through approval, which also opens their accounts.

    Raises:
        NotAuthenticatedError: No actor.
        AccessDeniedError: The actor may not make this change.
        UserNotFoundError: If no user has this id.
        DuplicateEmailError: Another user already has the new email.
    """
    if actor is None:
        raise NotAuthenticatedError()
    if actor.id != user_id and not actor.is_employee:
        raise AccessDeniedError("You can only update your own profile")

    user = await get_user(db, user_id)
    if user.role == UserRole.ATM:
        raise AccessDeniedError("The ATM house user cannot be edited")

    changes = {key: value for key, value in changes.items() if value is not None}

    role = changes.pop("role", None)
    if role is not None and role != user.role:
        if not actor.is_employee:
            raise AccessDeniedError("Only employees can change a role")
        if role == UserRole.ATM:
            raise AccessDeniedError("The ATM role cannot be assigned")
        if user.role == UserRole.UNAPPROVED:
            raise AccessDeniedError("Unapproved customers must be approved first")
        user.role = role

    email = changes.pop("email", None)
    if email is not None:
        email = email.strip().lower()
        taken = await db.execute(
            select(User.id).where(User.email == email, User.id != user.id)
        )
        if taken.first() is not None:
            raise DuplicateEmailError(email)
        user.email = email

    password = changes.pop("password", None)
    if password is not None:
        user.hashed_password = hash_password(password)

    for field in ("first_name", "last_name", "phone"):
        if field in changes:
            setattr(user, field, changes[field])

    await db.flush()
    logger.info("Updated user %s (by %s)", user.id, actor.id)
    return user


async def approve_user(
    db: AsyncSession,
    user_id: uuid.UUID,
    daily_limit: Decimal,
    absolute_limit: Decimal,
    balance_limit: Decimal | None = None,
) -> tuple[User, list[Account]]:
    """
    Approve a customer and open their PAYMENT and SAVINGS accounts.

    Args:
        db: Database session.
        user_id: The UNAPPROVED user to approve.
        daily_limit: Per-transfer cap for both new accounts.
        absolute_limit: Maximum single transfer for both new accounts.
        balance_limit: Overdraft floor; defaults to settings.DEFAULT_BALANCE_LIMIT.

    Returns:
        (the approved user, [payment account, savings account])

    Raises:
        UserNotFoundError: If the user doesn't exist.
        UserAlreadyApprovedError: If the user is not UNAPPROVED.
    """
    user = await get_user(db, user_id)
    if user.role != UserRole.UNAPPROVED:
        raise UserAlreadyApprovedError(user_id)

    if balance_limit is None:
        balance_limit = settings.DEFAULT_BALANCE_LIMIT

    accounts = []
    for account_type in (AccountType.PAYMENT, AccountType.SAVINGS):
        account = await account_service.create_account(
            db,
            owner_id=user.id,
            account_type=account_type,
            daily_limit=daily_limit,
            absolute_limit=absolute_limit,
            balance_limit=balance_limit,
        )
        accounts.append(account)

    user.role = UserRole.APPROVED
    await db.flush()
    # Load the new accounts into the relationship collection
    await db.refresh(user, attribute_names=["accounts"])

    logger.info("Approved user %s; opened %s", user.id, ", ".join(a.iban for a in accounts))
    return user, accounts


async def delete_user(db: AsyncSession, user_id: uuid.UUID) -> None:
    """
    Delete a user after deactivating and detaching their accounts.

    Raises:
        UserNotFoundError: If the user doesn't exist.
        AccessDeniedError: If the user is the house ATM user.
    """
    user = await get_user(db, user_id)
    if user.role == UserRole.ATM:
        raise AccessDeniedError("The ATM house user cannot be deleted")

    accounts = await account_service.get_accounts(db, user.id)
    for account in accounts:
        account.deactivate()
    await account_service.save_accounts(db, accounts)

    await db.delete(user)
    await db.flush()
    logger.info("Deleted user %s; deactivated %d account(s)", user_id, len(accounts))


async def provision_house_account(db: AsyncSession) -> str:
    """
    Make sure the house ATM user and account exist; return the account IBAN.

    Idempotent: an existing ATM-role user with an account is reused. The
    user is created inactive with a random password nobody knows, so it
    can never log in. The caller commits.
    """
    result = await db.execute(select(User).where(User.role == UserRole.ATM))
    house_user = result.scalars().first()

    if house_user is None:
        house_user = User(
            email=settings.HOUSE_ACCOUNT_EMAIL,
            hashed_password=hash_password(secrets.token_urlsafe(32)),
            first_name="ATM",
            last_name="House Account",
            role=UserRole.ATM,
            is_active=False,
        )
        db.add(house_user)
        await db.flush()
        logger.info("Created house ATM user %s", house_user.id)

    accounts = await account_service.get_accounts(db, house_user.id)
    if accounts:
        return accounts[0].iban

    account = await account_service.create_account(
        db,
        owner_id=house_user.id,
        account_type=AccountType.PAYMENT,
        daily_limit=settings.HOUSE_ACCOUNT_DAILY_LIMIT,
        absolute_limit=settings.HOUSE_ACCOUNT_ABSOLUTE_LIMIT,
        balance_limit=settings.HOUSE_ACCOUNT_BALANCE_LIMIT,
        balance=settings.HOUSE_ACCOUNT_BALANCE,
        bank_code=settings.HOUSE_ACCOUNT_BANK_CODE,
    )
    logger.info("Opened house ATM account %s", account.iban)
    return account.iban
