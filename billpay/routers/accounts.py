"""
Accounts router — the member's own accounts.

Endpoints (require JWT, scoped to the authenticated user):
  GET    /accounts                   — List own accounts
  GET    /accounts/{account_id}      — Get own account details

Accounts are opened and funded elsewhere; this API only needs to show
members which accounts they can pay bills from, and their balances.
"""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from billpay.database import get_db
from billpay.dependencies import get_current_member
from billpay.models.user import User
from billpay.schemas.account import AccountResponse
from billpay.services import account_service

router = APIRouter()


@router.get(
    "",
    response_model=list[AccountResponse],
    summary="List your accounts",
)
async def list_accounts(
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    """List all bank accounts owned by the authenticated user."""
    return await account_service.get_accounts(db, user.id)


@router.get(
    "/{account_id}",
    response_model=AccountResponse,
    summary="Get account details",
)
async def get_account(
    account_id: uuid.UUID,
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    """
    Get details for a specific account.

    Returns 403 if the account belongs to a different user, or 404 if
    the account doesn't exist.
    """
    return await account_service.get_account(db, account_id, user.id)
