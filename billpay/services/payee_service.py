"""
Payee service — the user's saved billers.

Payees are create-only: once a payment has copied a payee's category into
the ledger, the payee must not change underneath it.
"""

import uuid

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from billpay.models.payee import Payee

logger = structlog.get_logger(__name__)


async def add_payee(
    db: AsyncSession,
    user_id: uuid.UUID,
    name: str,
    account_number: str,
    category: str,
) -> Payee:
    """Save a new payee for the user. Categories are stored upper-case."""
    payee = Payee(
        user_id=user_id,
        name=name,
        account_number=account_number,
        category=category.upper(),
    )
    db.add(payee)
    await db.flush()

    logger.info("payee_added", user_id=str(user_id), payee_id=str(payee.id))
    return payee


async def get_payees(db: AsyncSession, user_id: uuid.UUID) -> list[Payee]:
    """List the user's payees, newest first."""
    result = await db.execute(
        select(Payee)
        .where(Payee.user_id == user_id)
        .order_by(Payee.created_at.desc())
    )
    return list(result.scalars().all())
