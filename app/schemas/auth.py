"""
Request and response bodies of /auth.

Signup collects the customer profile only. Limits and accounts are set
later by the employee who approves the customer, so none of them appear
here.
"""

import uuid

from pydantic import BaseModel, EmailStr, Field


class UserSignupRequest(BaseModel):
    """POST /auth/signup. The email is lower-cased by the service."""
    email: EmailStr
    password: str = Field(min_length=8)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: str | None = Field(None, max_length=20)


class UserLoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    token: str
    token_type: str = "bearer"


class SignupResponse(BaseModel):
    """The new customer's id and role (always UNAPPROVED) plus a token."""
    user_id: uuid.UUID
    email: str
    role: str
    token: str
    token_type: str = "bearer"
