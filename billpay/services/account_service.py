"""
Account service — read access to the accounts bills are paid from.

Accounts are opened, funded and closed by account-lifecycle processes
outside this API, so there are no write operations here.

Ownership enforcement:
  All query functions accept a `user_id` parameter. This is always the
  authenticated user's ID, set by the dependency layer. There is no way
  for a member to read another user's accounts through this service; the
  scoping happens here, not in the router.
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from billpay.exceptions import AccountNotFoundError, UnauthorizedAccessError
from billpay.models.account import Account


async def get_accounts(
    db: AsyncSession,
    user_id: uuid.UUID,
) -> list[Account]:
    """
    List all accounts belonging to a specific user.

    This is inherently scoped: only the owner's accounts are returned.
    """
    result = await db.execute(
        select(Account)
        .where(Account.user_id == user_id)
        .order_by(Account.created_at)
    )
    return list(result.scalars().all())


async def get_account(
    db: AsyncSession,
    account_id: uuid.UUID,
    user_id: uuid.UUID,
) -> Account:
    """
    Get a single account, verifying ownership.

    Raises:
        AccountNotFoundError: If the account doesn't exist.
        UnauthorizedAccessError: If the account belongs to someone else.
    """
    result = await db.execute(select(Account).where(Account.id == account_id))
    account = result.scalar_one_or_none()

    if account is None:
        raise AccountNotFoundError(account_id)

    if account.user_id != user_id:
        raise UnauthorizedAccessError("You do not have access to this account")

    return account
