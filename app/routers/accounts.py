"""
Accounts router: bank account endpoints.

Customer endpoints (require JWT):
  GET  /accounts                : List own accounts
  GET  /accounts/addressbook    : Find a payee's PAYMENT account by name
  GET  /accounts/{iban}         : Account details (owner or employee)

Employee endpoints (require JWT + EMPLOYEE/ADMIN role):
  GET  /accounts/search         : Search all accounts
  PUT  /accounts/{iban}/limits  : Change an account's limits

Accounts are never created through this router: approval of a user opens
them (see the users router).

Route order matters: the fixed paths (/search, /addressbook) are declared
before /{iban} so they are not captured as an IBAN.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user, require_employee
from app.models.account import AccountStatus, AccountType
from app.models.user import User
from app.schemas.account import AccountResponse, AddressBookEntry, LimitsUpdateRequest
from app.schemas.pagination import PaginatedResponse
from app.services import account_service

router = APIRouter()


@router.get(
    "",
    response_model=list[AccountResponse],
    summary="List your accounts",
)
async def list_accounts(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    List all bank accounts owned by the authenticated user.

    Only returns accounts belonging to the current user. An UNAPPROVED
    user gets an empty list.
    """
    return await account_service.get_accounts(db, user.id)


@router.get(
    "/search",
    response_model=PaginatedResponse[AccountResponse],
    summary="[Employee] Search accounts",
)
async def search_accounts(
    query: str | None = Query(None, description="IBAN fragment or owner name"),
    account_type: AccountType | None = Query(None),
    status: AccountStatus | None = Query(None),
    limit: int = Query(10, le=200),
    offset: int = Query(0),
    employee: User = Depends(require_employee),
    db: AsyncSession = Depends(get_db),
):
    """Search every account, newest first, with pagination."""
    accounts, total = await account_service.search_accounts(
        db,
        query=query,
        account_type=account_type,
        status=status,
        limit=limit,
        offset=offset,
    )
    return PaginatedResponse[AccountResponse](data=accounts, total_count=total)


@router.get(
    "/addressbook",
    response_model=list[AddressBookEntry],
    summary="Find a payee by name",
)
async def address_book(
    name: str = Query(..., min_length=1, description="Part of the payee's full name"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Look up the PAYMENT account of a person by name.

    Returns only the IBAN and the owner's name, never balances.
    """
    accounts = await account_service.search_address_book(db, name)
    return [
        AddressBookEntry(
            iban=account.iban,
            first_name=account.owner.first_name,
            last_name=account.owner.last_name,
        )
        for account in accounts
    ]


@router.get(
    "/{iban}",
    response_model=AccountResponse,
    summary="Get account details",
)
async def get_account(
    iban: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Get details for a specific account.

    Returns 403 if the account belongs to someone else (unless the caller
    is an employee), or 404 if the account doesn't exist.
    """
    return await account_service.get_account_for_actor(db, user, iban)


@router.put(
    "/{iban}/limits",
    response_model=AccountResponse,
    summary="[Employee] Update account limits",
)
async def update_limits(
    iban: str,
    request: LimitsUpdateRequest,
    employee: User = Depends(require_employee),
    db: AsyncSession = Depends(get_db),
):
    """Change the daily, absolute and/or balance limit of any account."""
    return await account_service.update_limits(
        db,
        iban,
        daily_limit=request.daily_limit,
        absolute_limit=request.absolute_limit,
        balance_limit=request.balance_limit,
    )
