"""
Payment verification review: settling document-backed payments.

A PaymentVerification is created PENDING by the verified-payment path with
no money moved. A reviewer (ADMIN) then decides:

  approve_verification():
    - claim the row (PENDING -> APPROVED) with a conditional UPDATE
    - guarded debit of the recorded account, in the same transaction as
    - a COMPLETED ledger Transaction, linked via transaction_id
    If the account is no longer active, or the guarded debit finds the
    balance too low, nothing is debited and the status becomes FAILED with
    the reason in review_note. The user has to submit a new payment.

  reject_verification():
    - claim the row (PENDING -> REJECTED), nothing else changes

Only PENDING verifications can be reviewed; everything else raises
VerificationStateError. The claim is a single UPDATE ... WHERE status =
'PENDING', so of two reviews racing on one row exactly one proceeds. The
debit goes through the same ledger_service.debit_account() as immediate
payments, so settlement can never overdraw an account either.
"""

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from billpay.exceptions import VerificationNotFoundError, VerificationStateError
from billpay.models.account import Account
from billpay.models.payee import Payee
from billpay.models.payment_verification import PaymentVerification, VerificationStatus
from billpay.money import from_cents
from billpay.services import ledger_service

logger = structlog.get_logger(__name__)

INSUFFICIENT_FUNDS_NOTE = "Insufficient funds at settlement"
ACCOUNT_INACTIVE_NOTE = "Account not active at settlement"


async def list_verifications(
    db: AsyncSession,
    status_filter: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[PaymentVerification]:
    """List verifications, oldest first so reviewers work the queue in order."""
    query = (
        select(PaymentVerification)
        .order_by(PaymentVerification.created_at.asc())
        .limit(limit)
        .offset(offset)
    )
    if status_filter:
        query = query.where(PaymentVerification.status == status_filter)

    result = await db.execute(query)
    return list(result.scalars().all())


async def _claim_pending(
    db: AsyncSession,
    verification_id: uuid.UUID,
    status: str,
    reviewer_id: uuid.UUID,
    note: str | None,
) -> PaymentVerification:
    """
    Move a PENDING verification to `status` in one conditional UPDATE.

    Raises:
        VerificationNotFoundError: Unknown id.
        VerificationStateError: The row was not PENDING when the UPDATE ran.
    """
    result = await db.execute(
        update(PaymentVerification)
        .where(
            PaymentVerification.id == verification_id,
            PaymentVerification.status == VerificationStatus.PENDING,
        )
        .values(
            status=status,
            reviewed_by=reviewer_id,
            reviewed_at=datetime.now(timezone.utc),
            review_note=note,
        )
        .execution_options(synchronize_session=False)
    )

    verification = await db.get(
        PaymentVerification, verification_id, populate_existing=True
    )
    if verification is None:
        raise VerificationNotFoundError(verification_id)
    if result.rowcount != 1:
        raise VerificationStateError(verification_id, verification.status)
    return verification


async def _fail_settlement(
    db: AsyncSession,
    verification: PaymentVerification,
    note: str,
) -> PaymentVerification:
    # Row is already claimed by this transaction
    verification.status = VerificationStatus.FAILED
    verification.review_note = note
    await db.flush()
    return verification


async def approve_verification(
    db: AsyncSession,
    verification_id: uuid.UUID,
    reviewer_id: uuid.UUID,
    note: str | None = None,
) -> PaymentVerification:
    """
    Approve a pending verification and settle it into the ledger.

    Returns:
        The verification, now APPROVED (or FAILED if it could not settle).

    Raises:
        VerificationNotFoundError: Unknown id.
        VerificationStateError: The verification is not PENDING.
    """
    verification = await _claim_pending(
        db, verification_id, VerificationStatus.APPROVED, reviewer_id, note
    )
    log = logger.bind(
        verification_id=str(verification.id),
        reviewer_id=str(reviewer_id),
        account_id=str(verification.account_id),
    )

    account = await db.get(Account, verification.account_id)
    if account is None or account.status != "ACTIVE":
        log.warning("verification_settlement_failed", reason="account_inactive")
        return await _fail_settlement(db, verification, ACCOUNT_INACTIVE_NOTE)

    if not await ledger_service.debit_account(db, account.id, verification.amount_cents):
        log.warning("verification_settlement_failed", reason="insufficient_funds")
        return await _fail_settlement(db, verification, INSUFFICIENT_FUNDS_NOTE)

    payee = await db.get(Payee, verification.payee_id)
    txn = await ledger_service.record_payment(db, account, payee, verification.amount_cents)

    verification.transaction_id = txn.id
    await db.flush()

    log.info(
        "verification_approved",
        transaction_id=str(txn.id),
        amount=str(from_cents(verification.amount_cents)),
    )
    return verification


async def reject_verification(
    db: AsyncSession,
    verification_id: uuid.UUID,
    reviewer_id: uuid.UUID,
    note: str | None = None,
) -> PaymentVerification:
    """
    Reject a pending verification. No funds move.

    Raises:
        VerificationNotFoundError: Unknown id.
        VerificationStateError: The verification is not PENDING.
    """
    verification = await _claim_pending(
        db, verification_id, VerificationStatus.REJECTED, reviewer_id, note
    )

    logger.info(
        "verification_rejected",
        verification_id=str(verification.id),
        reviewer_id=str(reviewer_id),
    )
    return verification
