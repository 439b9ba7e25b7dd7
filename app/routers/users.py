"""
Users router: profiles, approval and deletion.

Endpoints (require JWT):
  GET    /users/me             : Own profile and accounts
  GET    /users/{user_id}      : A profile (self or employee)
  PUT    /users/{user_id}      : Update a profile (self or employee; only
                                  employees change roles)

Employee endpoints:
  GET    /users                : Search users
  PUT    /users/{user_id}/approve: Approve a customer; opens PAYMENT and
                                  SAVINGS accounts
  DELETE /users/{user_id}      : Delete a user; their accounts are
                                  deactivated and kept
"""

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user, require_employee
from app.models.user import User, UserRole
from app.schemas.pagination import PaginatedResponse
from app.schemas.user import ApprovalRequest, UserDetailResponse, UserResponse, UserUpdateRequest
from app.services import user_service

router = APIRouter()


@router.get(
    "/me",
    response_model=UserDetailResponse,
    summary="Get your profile",
)
async def get_me(user: User = Depends(get_current_user)):
    return user


@router.get(
    "",
    response_model=PaginatedResponse[UserResponse],
    summary="[Employee] Search users",
)
async def search_users(
    query: str | None = Query(None, description="Name or email fragment"),
    role: UserRole | None = Query(None),
    limit: int = Query(10, le=200),
    offset: int = Query(0),
    employee: User = Depends(require_employee),
    db: AsyncSession = Depends(get_db),
):
    """Search users; e.g. `?role=UNAPPROVED` lists customers awaiting approval."""
    users, total = await user_service.search_users(
        db, query=query, role=role, limit=limit, offset=offset
    )
    return PaginatedResponse[UserResponse](data=users, total_count=total)


@router.get(
    "/{user_id}",
    response_model=UserDetailResponse,
    summary="Get a user's profile",
)
async def get_user(
    user_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.get_user_for_actor(db, user, user_id)


@router.put(
    "/{user_id}",
    response_model=UserDetailResponse,
    summary="Update a user's profile",
)
async def update_user(
    user_id: uuid.UUID,
    request: UserUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Change any of name, email, phone and password. Employees may also change
    the role; a customer trying to do so gets 403.
    """
    return await user_service.update_user(
        db, user, user_id, request.model_dump(exclude_unset=True)
    )


@router.put(
    "/{user_id}/approve",
    response_model=UserDetailResponse,
    summary="[Employee] Approve a customer",
)
async def approve_user(
    user_id: uuid.UUID,
    request: ApprovalRequest,
    employee: User = Depends(require_employee),
    db: AsyncSession = Depends(get_db),
):
    """
    Approve an UNAPPROVED customer.

    Opens exactly one PAYMENT and one SAVINGS account with zero balance and
    the given limits. `balance_limit` defaults to the configured
    DEFAULT_BALANCE_LIMIT. Approving a user twice returns 409.
    """
    user, _ = await user_service.approve_user(
        db,
        user_id,
        daily_limit=request.daily_limit,
        absolute_limit=request.absolute_limit,
        balance_limit=request.balance_limit,
    )
    return user


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="[Employee] Delete a user",
)
async def delete_user(
    user_id: uuid.UUID,
    employee: User = Depends(require_employee),
    db: AsyncSession = Depends(get_db),
):
    """Delete a user. Their accounts are deactivated, detached and kept."""
    await user_service.delete_user(db, user_id)
