"""
Credentials for YieldBank: customer password hashes and bearer tokens.

Passwords:
  Stored only as Argon2id hashes through passlib. Signup, login and profile
  updates are the only callers; the plaintext never reaches the database
  or the logs.

Bearer tokens:
  A token identifies a user by id ("sub") and expires after
  ACCESS_TOKEN_EXPIRE_MINUTES. It carries no role. get_current_user reloads
  the user on every request, so approving a customer, promoting an
  employee or deleting a user changes what the next request may do
  without reissuing tokens.
"""

from datetime import datetime, timedelta, timezone

from jose import jwt
from passlib.context import CryptContext

from app.config import settings


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------

# deprecated="auto" keeps old hashes verifiable if the scheme list changes
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(plain_password: str) -> str:
    """Return the Argon2id hash stored in users.hashed_password."""
    return pwd_context.hash(plain_password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


# ---------------------------------------------------------------------------
# Bearer tokens
# ---------------------------------------------------------------------------


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """
    Sign the claims in `data` (which must hold "sub", the user id) with
    SECRET_KEY and add an "exp" claim.

    expires_delta overrides the configured lifetime; tests use a negative
    one to mint tokens that are already expired.
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Raises:
        JWTError: Bad signature, malformed token or past "exp". The caller
            turns this into a 401.
    """
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
