"""
Bill payment service — the payment workflow.

THIS IS THE MOST CRITICAL FILE IN THE PROJECT. It handles:
  - The verification threshold gate
  - Account and payee resolution (always scoped to the requesting user)
  - The atomic debit + ledger entry (+ outbox row for invoice payments)
  - The document-backed "verified" path that defers large payments to review

process_payment() flow:

    amount valid? ──no──> PaymentRejected(INVALID_AMOUNT)
    amount >= threshold? ──yes──> VerificationRequired   (no lookups at all)
    account (id, user, ACTIVE)? ──no──> PaymentRejected(ACCOUNT_NOT_FOUND)
    balance >= amount? ──no──> PaymentRejected(INSUFFICIENT_FUNDS)
    payee (id, user)? ──no──> PaymentRejected(PAYEE_NOT_FOUND)
    guarded debit ──0 rows──> PaymentRejected(INSUFFICIENT_FUNDS)
    ledger row, outbox row if reference starts with "INV-"
    ──> PaymentCompleted

The balance check before the debit only saves a round-trip for obviously
short accounts. The guarded debit re-checks inside the write itself, which
is what keeps concurrent payments from overdrawing an account.

Atomicity:
  The service never commits. Everything it writes goes into the session's
  current transaction, which the caller (get_db for HTTP requests) commits
  once. If writing the ledger row fails after the debit, the service rolls
  the session back and reports INTERNAL_ERROR, so a debit without its
  ledger row can never be committed. The service therefore expects a
  session dedicated to the one operation.

Errors:
  Business outcomes are returned as result objects (billpay.services.results).
  A lost database connection raises StorageUnavailableError so the caller
  can retry.
"""

import uuid
from decimal import Decimal

import structlog
from sqlalchemy import select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from billpay.exceptions import StorageUnavailableError
from billpay.models.account import Account
from billpay.models.payee import Payee
from billpay.models.payment_verification import PaymentVerification, VerificationStatus
from billpay.money import from_cents, to_cents
from billpay.services import ledger_service, threshold_service
from billpay.services.notification_service import (
    enqueue_invoice_notification,
    is_invoice_reference,
)
from billpay.services.results import (
    PaymentCompleted,
    PaymentErrorCode,
    PaymentRejected,
    PaymentResult,
    VerificationRequired,
    VerificationSubmitted,
)

logger = structlog.get_logger(__name__)


def _positive_cents(amount: Decimal) -> int:
    """Convert to cents, rejecting zero, negatives and sub-cent precision."""
    cents = to_cents(amount)
    if cents <= 0:
        raise ValueError(f"Amount must be positive, got {amount}")
    return cents


class BillPaymentService:
    """
    Processes bill payments for one database session.

    Args:
        db: The session all reads and writes go through.
        default_threshold: Overrides settings.DEFAULT_VERIFICATION_THRESHOLD
                           as the fallback when no threshold is configured.
    """

    def __init__(self, db: AsyncSession, default_threshold: Decimal | None = None):
        self.db = db
        self.default_threshold = default_threshold

    async def get_verification_threshold(self) -> Decimal:
        return await threshold_service.get_verification_threshold(
            self.db, default=self.default_threshold
        )

    # ------------------------------------------------------------------
    # Immediate payments
    # ------------------------------------------------------------------

    async def process_payment(
        self,
        user_id: uuid.UUID,
        payee_id: uuid.UUID,
        account_id: uuid.UUID,
        amount: Decimal,
        reference: str | None = None,
    ) -> PaymentResult:
        """
        Pay a bill immediately, or report that it needs verification.

        Args:
            user_id: The authenticated user; both account and payee must be theirs.
            payee_id: The saved payee to pay.
            account_id: The account to debit.
            amount: Positive decimal with at most two fractional digits.
            reference: Free text. "INV-..." references trigger an
                       invoice-paid webhook after the payment commits.

        Returns:
            PaymentCompleted, VerificationRequired or PaymentRejected.

        Raises:
            StorageUnavailableError: If the database connection fails.
        """
        log = logger.bind(
            user_id=str(user_id),
            account_id=str(account_id),
            payee_id=str(payee_id),
        )

        try:
            amount_cents = _positive_cents(amount)
        except ValueError:
            return self._reject(log, PaymentErrorCode.INVALID_AMOUNT)
        amount = from_cents(amount_cents)

        try:
            threshold = await self.get_verification_threshold()
            if amount >= threshold:
                log.info(
                    "payment_requires_verification",
                    amount=str(amount),
                    threshold=str(threshold),
                )
                return VerificationRequired(threshold=threshold)

            account = await self._find_account(account_id, user_id)
            if account is None:
                return self._reject(log, PaymentErrorCode.ACCOUNT_NOT_FOUND)

            if account.balance_cents < amount_cents:
                return self._reject(log, PaymentErrorCode.INSUFFICIENT_FUNDS)

            payee = await self._find_payee(payee_id, user_id)
            if payee is None:
                return self._reject(log, PaymentErrorCode.PAYEE_NOT_FOUND)

            return await self._execute_payment(log, account, payee, amount_cents, reference)
        except OperationalError as exc:
            log.exception("payment_storage_unavailable")
            await self.db.rollback()
            raise StorageUnavailableError("bill payment") from exc

    async def _execute_payment(
        self,
        log,
        account: Account,
        payee: Payee,
        amount_cents: int,
        reference: str | None,
    ) -> PaymentResult:
        amount = from_cents(amount_cents)
        try:
            if not await ledger_service.debit_account(self.db, account.id, amount_cents):
                # Another payment spent the money between our read and our write
                return self._reject(log, PaymentErrorCode.INSUFFICIENT_FUNDS)

            txn = await ledger_service.record_payment(
                self.db, account, payee, amount_cents, invoice_reference=reference
            )

            if is_invoice_reference(reference):
                await enqueue_invoice_notification(
                    self.db,
                    invoice_number=reference,
                    amount=amount,
                    transaction_ref=txn.reference,
                )

            await self.db.refresh(account, ["balance_cents"])
        except OperationalError:
            raise
        except SQLAlchemyError:
            log.exception("payment_execution_failed", amount=str(amount))
            await self.db.rollback()
            return PaymentRejected(PaymentErrorCode.INTERNAL_ERROR)

        log.info(
            "payment_completed",
            transaction_id=str(txn.id),
            reference=txn.reference,
            amount=str(amount),
            invoice_notification=is_invoice_reference(reference),
        )
        return PaymentCompleted(
            transaction_id=txn.id,
            reference=txn.reference,
            amount=amount,
            new_balance=from_cents(account.balance_cents),
        )

    # ------------------------------------------------------------------
    # Document-backed payments
    # ------------------------------------------------------------------

    async def process_verified_payment(
        self,
        user_id: uuid.UUID,
        payee_id: uuid.UUID,
        account_id: uuid.UUID,
        amount: Decimal,
        document_path: str,
    ) -> PaymentResult:
        """
        Submit a payment backed by a supporting document for manual review.

        The threshold gate is skipped: the document IS the verification.
        No money moves here; see verification_service for settlement.

        Returns:
            VerificationSubmitted or PaymentRejected.

        Raises:
            StorageUnavailableError: If the database connection fails.
        """
        log = logger.bind(
            user_id=str(user_id),
            account_id=str(account_id),
            payee_id=str(payee_id),
        )

        try:
            amount_cents = _positive_cents(amount)
        except ValueError:
            return self._reject(log, PaymentErrorCode.INVALID_AMOUNT)

        try:
            account = await self._find_account(account_id, user_id)
            if account is None:
                return self._reject(log, PaymentErrorCode.ACCOUNT_NOT_FOUND)

            if account.balance_cents < amount_cents:
                return self._reject(log, PaymentErrorCode.INSUFFICIENT_FUNDS)

            payee = await self._find_payee(payee_id, user_id)
            if payee is None:
                return self._reject(log, PaymentErrorCode.PAYEE_NOT_FOUND)

            verification = PaymentVerification(
                user_id=user_id,
                payee_id=payee.id,
                account_id=account.id,
                amount_cents=amount_cents,
                currency=account.currency,
                document_path=document_path,
                status=VerificationStatus.PENDING,
            )
            self.db.add(verification)
            await self.db.flush()
        except OperationalError as exc:
            log.exception("verified_payment_storage_unavailable")
            await self.db.rollback()
            raise StorageUnavailableError("verified bill payment") from exc
        except SQLAlchemyError:
            log.exception("verified_payment_failed")
            await self.db.rollback()
            return PaymentRejected(PaymentErrorCode.INTERNAL_ERROR)

        log.info(
            "payment_submitted_for_verification",
            verification_id=str(verification.id),
            amount=str(from_cents(amount_cents)),
        )
        return VerificationSubmitted(verification_id=verification.id)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _find_account(
        self, account_id: uuid.UUID, user_id: uuid.UUID
    ) -> Account | None:
        result = await self.db.execute(
            select(Account)
            .where(Account.id == account_id)
            .where(Account.user_id == user_id)
            .where(Account.status == "ACTIVE")
        )
        return result.scalar_one_or_none()

    async def _find_payee(
        self, payee_id: uuid.UUID, user_id: uuid.UUID
    ) -> Payee | None:
        result = await self.db.execute(
            select(Payee)
            .where(Payee.id == payee_id)
            .where(Payee.user_id == user_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _reject(log, code: PaymentErrorCode) -> PaymentRejected:
        log.info("payment_rejected", reason=code.value)
        return PaymentRejected(code)
