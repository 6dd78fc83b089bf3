"""
Ledger primitives shared by immediate payments and verification settlement.

  - debit_account(): the ONLY way this service lowers a balance. A single
    guarded UPDATE that checks and decrements in one statement, so two
    concurrent payments can never both spend the same money:

        UPDATE accounts SET balance_cents = balance_cents - :amount
         WHERE id = :id AND balance_cents >= :amount

    Zero rows matched means the balance was too low at the moment of the
    write, regardless of what an earlier SELECT saw.

  - record_payment(): inserts the append-only ledger row for a debit.

Neither function commits. Callers run both inside the same database
transaction so the debit and its ledger row are durable together or not
at all.
"""

import secrets
import time
import uuid
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from billpay.models.account import Account
from billpay.models.payee import Payee
from billpay.models.transaction import Transaction, TransactionStatus, TransactionType


def generate_payment_reference() -> str:
    """
    Generate a unique payment reference: "BP" + last 8 digits of the epoch
    milliseconds + 8 random hex characters, e.g. "BP93718264A1B2C3D4".
    """
    millis = str(time.time_ns() // 1_000_000)
    return f"BP{millis[-8:]}{secrets.token_hex(4).upper()}"


async def debit_account(
    db: AsyncSession,
    account_id: uuid.UUID,
    amount_cents: int,
) -> bool:
    """
    Decrement an account balance if, and only if, it covers the amount.

    Returns:
        True if the balance was debited, False if it was insufficient
        (in which case nothing was written).
    """
    result = await db.execute(
        update(Account)
        .where(Account.id == account_id)
        .where(Account.balance_cents >= amount_cents)
        .values(
            balance_cents=Account.balance_cents - amount_cents,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def record_payment(
    db: AsyncSession,
    account: Account,
    payee: Payee,
    amount_cents: int,
    invoice_reference: str | None = None,
) -> Transaction:
    """Insert the COMPLETED ledger row for a bill payment debit."""
    now = datetime.now(timezone.utc)
    txn = Transaction(
        account_id=account.id,
        type=TransactionType.PAYMENT,
        amount_cents=-amount_cents,
        currency=account.currency,
        status=TransactionStatus.COMPLETED,
        category=payee.category,
        description=f"Bill payment to {payee.name}",
        reference=generate_payment_reference(),
        invoice_reference=invoice_reference,
        completed_at=now,
        created_at=now,
    )
    db.add(txn)
    await db.flush()
    return txn


async def get_payment_history(
    db: AsyncSession,
    user_id: uuid.UUID,
    limit: int = 20,
    offset: int = 0,
) -> list[Transaction]:
    """
    List bill payments across all of a user's accounts, newest first.
    """
    result = await db.execute(
        select(Transaction)
        .join(Account, Account.id == Transaction.account_id)
        .where(Account.user_id == user_id)
        .where(Transaction.type == TransactionType.PAYMENT)
        .order_by(Transaction.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())
