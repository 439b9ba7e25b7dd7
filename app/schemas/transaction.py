"""
Pydantic schemas for Transaction endpoints.

Amounts are exact decimals with at most two fractional digits. The sign of
the amount is deliberately NOT constrained here: a zero or negative amount
is rejected by the ledger with its own error type (non_positive_amount),
in the same order as every other transfer check.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from app.models.transaction import TransactionType


class TransactionResponse(BaseModel):
    """Public representation of a transaction."""
    id: int
    from_account: str
    to_account: str
    transfer_amount: Decimal
    description: str | None
    reference: str
    timestamp: datetime
    transaction_type: TransactionType

    model_config = {"from_attributes": True}


class TransferRequest(BaseModel):
    """Request body for POST /transactions."""
    from_account: str | None = Field(None, max_length=64, description="IBAN to debit")
    to_account: str | None = Field(None, max_length=64, description="IBAN to credit")
    transfer_amount: Decimal = Field(max_digits=15, decimal_places=2)
    description: str | None = Field(None, max_length=255)


class AtmTransactionRequest(BaseModel):
    """Request body for POST /transactions/atm."""
    account: str = Field(max_length=64, description="IBAN of the customer account")
    # Free-form so an unsupported type gets the ledger's own error response
    transaction_type: str = Field(description="DEPOSIT or WITHDRAW")
    amount: Decimal = Field(max_digits=15, decimal_places=2)
