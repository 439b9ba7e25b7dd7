"""
Transactions router: money movement and transaction history.

Endpoints (require JWT):
  POST /transactions                        : Transfer between two accounts
  POST /transactions/atm                    : ATM deposit or withdrawal
  GET  /transactions/iban/{iban}            : History of one account
                                               (owner or employee)

Employee endpoints:
  GET  /transactions/search                 : Search all transactions
  GET  /transactions/reference/{reference}  : Look up by reference
  GET  /transactions/{transaction_id}       : Look up by id

Who may do what (ownership, employee role) is enforced in the service
layer; rejected transfers come back as 4xx with a machine-readable
error_type, e.g. {"detail": "...", "error_type": "insufficient_balance"}.

Route order matters: /search and /reference/... are declared before
/{transaction_id}.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user, get_house_account_iban, require_employee
from app.models.user import User
from app.schemas.pagination import PaginatedResponse
from app.schemas.transaction import (
    AtmTransactionRequest,
    TransactionResponse,
    TransferRequest,
)
from app.services import ledger_service, transaction_service

router = APIRouter()


@router.post(
    "",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Transfer money between accounts",
)
async def create_transfer(
    request: TransferRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Move money from one account to another.

    Customers can only transfer from their own accounts; employees from any
    account. Savings accounts only accept transfers to and from accounts of
    the same owner. The amount must respect the source account's absolute
    limit, daily limit and balance floor.
    """
    return await ledger_service.transfer(
        db,
        actor=user,
        from_iban=request.from_account,
        to_iban=request.to_account,
        amount=request.transfer_amount,
        description=request.description,
    )


@router.post(
    "/atm",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="ATM deposit or withdrawal",
)
async def create_atm_transaction(
    request: AtmTransactionRequest,
    user: User = Depends(get_current_user),
    house_account_iban: str | None = Depends(get_house_account_iban),
    db: AsyncSession = Depends(get_db),
):
    """
    Deposit cash into, or withdraw cash from, an account.

    - **transaction_type**: DEPOSIT or WITHDRAW
    - A withdrawal may not exceed the account balance.
    """
    return await ledger_service.atm_transaction(
        db,
        actor=user,
        account_iban=request.account,
        transaction_type=request.transaction_type,
        amount=request.amount,
        house_account_iban=house_account_iban,
    )


@router.get(
    "/search",
    response_model=PaginatedResponse[TransactionResponse],
    summary="[Employee] Search transactions",
)
async def search_transactions(
    query: str | None = Query(None, description="IBAN, reference, description or id fragment"),
    type: str | None = Query(None, description="TRANSFER, DEPOSIT or WITHDRAW"),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    amount: Decimal | None = Query(None),
    amount_operator: Literal["lt", "gt", "eq"] | None = Query(None),
    limit: int = Query(10, le=200),
    offset: int = Query(0),
    employee: User = Depends(require_employee),
    db: AsyncSession = Depends(get_db),
):
    """
    Search every transaction, newest first.

    All filters are optional and combined with AND. The amount filter
    compares absolute values and needs both `amount` and `amount_operator`.
    """
    transactions, total = await transaction_service.search_transactions(
        db,
        query=query,
        type_filter=type,
        start_date=start_date,
        end_date=end_date,
        amount=amount,
        amount_operator=amount_operator,
        limit=limit,
        offset=offset,
    )
    return PaginatedResponse[TransactionResponse](data=transactions, total_count=total)


@router.get(
    "/reference/{reference}",
    response_model=list[TransactionResponse],
    summary="[Employee] Find transactions by reference",
)
async def get_by_reference(
    reference: str,
    employee: User = Depends(require_employee),
    db: AsyncSession = Depends(get_db),
):
    return await transaction_service.get_transactions_by_reference(db, employee, reference)


@router.get(
    "/iban/{iban}",
    response_model=list[TransactionResponse],
    summary="List transactions for an account",
)
async def get_by_iban(
    iban: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """All transactions where the account is sender or receiver, newest first."""
    return await transaction_service.get_transactions_by_iban(db, user, iban)


@router.get(
    "/{transaction_id}",
    response_model=TransactionResponse,
    summary="[Employee] Get a transaction",
)
async def get_transaction(
    transaction_id: int,
    employee: User = Depends(require_employee),
    db: AsyncSession = Depends(get_db),
):
    return await transaction_service.get_transaction_for_actor(db, employee, transaction_id)
