"""
Authentication service: signup and login business logic.

This module contains the core auth logic, separated from HTTP concerns.
The router calls these functions and translates the results into HTTP
responses, so the logic can be tested without spinning up a web server.

Signup flow:
  1. Normalize the email and check it is not registered yet
  2. Hash the password with Argon2id
  3. Create the User with role UNAPPROVED (no accounts until an employee
     approves them)
  4. Return a JWT token so the user is immediately logged in

Login flow:
  1. Look up user by email
  2. Verify password against stored hash
  3. Return a JWT token

Security notes:
  - Login returns the same error for "wrong password", "email not found"
    and "inactive user" to prevent user enumeration
  - The house ATM user is inactive, so it can never obtain a token
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import DuplicateEmailError, InvalidCredentialsError
from app.models.user import User, UserRole
from app.security import hash_password, verify_password, create_access_token

logger = logging.getLogger(__name__)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


async def signup(
    db: AsyncSession,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    phone: str | None = None,
) -> tuple[User, str]:
    """
    Register a new, not yet approved, customer.

    Args:
        db: Database session.
        email: User's email (must be unique, compared case-insensitively).
        password: Plaintext password (will be hashed before storage).
        first_name / last_name: The customer's name.
        phone: Optional phone number.

    Returns:
        Tuple of (User instance, JWT token string).

    Raises:
        DuplicateEmailError: If the email is already registered.
    """
    email = _normalize_email(email)

    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none() is not None:
        raise DuplicateEmailError(email)

    user = User(
        email=email,
        hashed_password=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        role=UserRole.UNAPPROVED,
    )
    db.add(user)
    # Flush to get the user.id assigned (needed for the token subject)
    await db.flush()

    logger.info("Signed up user %s", user.id)

    # "sub" (subject) is the standard claim for user identity
    token = create_access_token(data={"sub": str(user.id)})
    return user, token


async def login(
    db: AsyncSession,
    email: str,
    password: str,
) -> tuple[User, str]:
    """
    Authenticate a user and return a JWT token.

    Raises:
        InvalidCredentialsError: If the email is unknown, the password is
            wrong, or the user is inactive.
    """
    result = await db.execute(select(User).where(User.email == _normalize_email(email)))
    user = result.scalar_one_or_none()

    # Same error for every case: prevents user enumeration
    if user is None:
        raise InvalidCredentialsError()

    if not verify_password(password, user.hashed_password):
        raise InvalidCredentialsError()

    if not user.is_active:
        raise InvalidCredentialsError()

    token = create_access_token(data={"sub": str(user.id)})
    return user, token
