"""
FastAPI dependencies for authentication and authorization.

Dependencies are reusable functions that FastAPI injects into route handlers.
They form a dependency chain that enforces both authentication and
role-based access control:

  get_current_user (JWT -> User)
      └── require_employee (User -> User)      [EMPLOYEE / ADMIN role]

Role-based access control:
  - UNAPPROVED / APPROVED customers reach the generic endpoints; the service
    layer scopes what they may do by account ownership (User.owns_account).
  - EMPLOYEE / ADMIN may act on any account and reach the employee-only
    endpoints guarded by require_employee.

The house ATM account is also injected here: it is provisioned once at
startup and its IBAN stored on app.state, so the ATM endpoint never looks
it up by a magic e-mail address at request time.
"""

import uuid

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.exceptions import AccessDeniedError
from app.models.user import User
from app.security import decode_access_token


# OAuth2PasswordBearer tells FastAPI where to look for the token:
# the "Authorization: Bearer <token>" header. The tokenUrl points to
# the login endpoint (used by Swagger UI's "Authorize" button).
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Extract and validate the JWT token, then return the corresponding User.

    This dependency is the first line of defense: if the token is missing,
    expired, or tampered with, the request is rejected with 401.

    Args:
        token: JWT from the Authorization header (injected by OAuth2PasswordBearer).
        db: Database session (injected by get_db).

    Returns:
        The authenticated User instance.

    Raises:
        HTTPException 401: If the token is invalid or the user doesn't exist.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_access_token(token)
        user_id_str: str | None = payload.get("sub")
        if user_id_str is None:
            raise credentials_exception
        user_id = uuid.UUID(user_id_str)
    except (JWTError, ValueError):
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        raise credentials_exception

    return user


async def require_employee(
    user: User = Depends(get_current_user),
) -> User:
    """
    Require the authenticated user to be an EMPLOYEE or ADMIN.

    Used on endpoints that work across all customers: user approval and
    deletion, account search, limit changes, transaction search.

    Raises:
        AccessDeniedError (403): If the user is a customer.
    """
    if not user.is_employee:
        raise AccessDeniedError("Employee access required")
    return user


def get_house_account_iban(request: Request) -> str | None:
    """
    Return the IBAN of the house ATM account resolved at startup.

    None means the house account was never provisioned; the ledger engine
    turns that into AtmUserNotConfiguredError.
    """
    return getattr(request.app.state, "house_account_iban", None)
