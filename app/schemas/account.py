"""
Pydantic schemas for Account endpoints.

All monetary amounts are exact decimals, serialized as strings with two
decimal places (e.g. "1500.00") so no precision is lost in JSON.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from app.models.account import AccountStatus, AccountType


class AccountResponse(BaseModel):
    """Full representation of a bank account, for its owner or an employee."""
    id: uuid.UUID
    owner_id: uuid.UUID | None
    iban: str
    account_type: AccountType
    status: AccountStatus
    balance: Decimal
    daily_limit: Decimal
    absolute_limit: Decimal
    balance_limit: Decimal
    deactivated_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class AddressBookEntry(BaseModel):
    """Payee lookup result.

    Intentionally excludes balance and limits: customers use this only to
    find the IBAN of someone they want to pay.
    """
    iban: str
    first_name: str
    last_name: str


class LimitsUpdateRequest(BaseModel):
    """Request body for PUT /accounts/{iban}/limits. Omitted fields are unchanged."""
    daily_limit: Decimal | None = Field(None, ge=0, max_digits=15, decimal_places=2)
    absolute_limit: Decimal | None = Field(None, ge=0, max_digits=15, decimal_places=2)
    balance_limit: Decimal | None = Field(None, max_digits=15, decimal_places=2)
