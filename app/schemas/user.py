"""
Pydantic schemas for User-related requests and responses.

These schemas control what user data is exposed through the API.
Notice that hashed_password is NEVER included in any response schema:
this is a critical security boundary.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, EmailStr, Field

from app.models.user import UserRole
from app.schemas.account import AccountResponse


class UserResponse(BaseModel):
    """Public representation of a User (never includes password hash)."""
    id: uuid.UUID
    email: EmailStr
    first_name: str
    last_name: str
    phone: str | None
    role: UserRole
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class UserDetailResponse(UserResponse):
    """A user together with the accounts they own."""
    accounts: list[AccountResponse]


class ApprovalRequest(BaseModel):
    """Request body for PUT /users/{id}/approve: limits for the two new accounts."""
    daily_limit: Decimal = Field(ge=0, max_digits=15, decimal_places=2)
    absolute_limit: Decimal = Field(ge=0, max_digits=15, decimal_places=2)
    balance_limit: Decimal | None = Field(None, max_digits=15, decimal_places=2)


class UserUpdateRequest(BaseModel):
    """
    Request body for PUT /users/{id}. Every field is optional; only the
    fields sent are changed.
    """
    first_name: str | None = Field(None, min_length=1, max_length=100)
    last_name: str | None = Field(None, min_length=1, max_length=100)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=20)
    role: UserRole | None = None
    password: str | None = Field(None, min_length=8)
