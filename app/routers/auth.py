"""
Auth router: the public entry points of YieldBank.

  POST /auth/signup : Open a customer profile (UNAPPROVED, no accounts yet)
                     and return a bearer token
  POST /auth/login  : Exchange email and password for a bearer token

All other routes except /health need the token. A fresh signup can log in
and read its own profile, but it cannot move money until an employee
approves it and its PAYMENT and SAVINGS accounts are opened.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.schemas.auth import (
    UserSignupRequest,
    UserLoginRequest,
    TokenResponse,
    SignupResponse,
)
from app.services import auth_service

router = APIRouter()


@router.post(
    "/signup",
    response_model=SignupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def signup(
    request: UserSignupRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Register a customer. The response token works right away, but only for
    routes that need no account; approval is done by an employee.

    Emails are matched case-insensitively and must not be registered yet
    (409 `duplicate_email`).
    """
    user, token = await auth_service.signup(
        db=db,
        email=request.email,
        password=request.password,
        first_name=request.first_name,
        last_name=request.last_name,
        phone=request.phone,
    )

    return SignupResponse(
        user_id=user.id,
        email=user.email,
        role=user.role.value,
        token=token,
    )


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Authenticate and get a token",
)
async def login(
    request: UserLoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Log in with email and password.

    Unknown emails, wrong passwords and inactive users (the house ATM user
    among them) all get the same 401. Send the token back as
    `Authorization: Bearer <token>`.
    """
    _, token = await auth_service.login(
        db=db,
        email=request.email,
        password=request.password,
    )
    return TokenResponse(token=token)
