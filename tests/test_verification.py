"""
Tests for document-backed payments and their review.

These tests verify:
  - A verified payment above the threshold creates a PENDING verification
    and moves no money
  - The verified path still checks account, payee, funds and amount
  - Approval debits the account and links a ledger row
  - Approval fails cleanly (FAILED, no debit) when funds or the account are gone
  - Rejection moves no money
  - Only PENDING verifications can be reviewed
"""

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from billpay.exceptions import VerificationNotFoundError, VerificationStateError
from billpay.models.account import Account
from billpay.models.payment_verification import PaymentVerification, VerificationStatus
from billpay.models.transaction import Transaction
from billpay.services import verification_service
from billpay.services.bill_payment_service import BillPaymentService
from billpay.services.results import PaymentErrorCode, VerificationSubmitted

from conftest import balance_of


async def _submit(db, user, account, payee, amount="50000.00"):
    result = await BillPaymentService(db).process_verified_payment(
        user_id=user.id,
        payee_id=payee.id,
        account_id=account.id,
        amount=Decimal(amount),
        document_path="documents/invoices/2026/roof-repair.pdf",
    )
    await db.commit()
    return result


class TestVerifiedPayment:

    async def test_creates_pending_verification(
        self, db_session, member, make_account, make_payee
    ):
        account = await make_account(member, balance="60000.00")
        payee = await make_payee(member, name="Acme Roofing", category="home")

        result = await _submit(db_session, member, account, payee)

        assert isinstance(result, VerificationSubmitted)
        assert result.success is True
        assert "submitted for verification" in result.message

        verification = await db_session.get(PaymentVerification, result.verification_id)
        assert verification.status == VerificationStatus.PENDING
        assert verification.amount_cents == 5000000
        assert verification.user_id == member.id
        assert verification.payee_id == payee.id
        assert verification.account_id == account.id
        assert verification.document_path == "documents/invoices/2026/roof-repair.pdf"
        assert verification.transaction_id is None

        assert await balance_of(db_session, account.id) == 6000000
        count = await db_session.execute(select(func.count()).select_from(Transaction))
        assert count.scalar_one() == 0

    async def test_below_threshold_is_also_accepted(
        self, db_session, member, make_account, make_payee
    ):
        account = await make_account(member, balance="100.00")
        payee = await make_payee(member)

        result = await _submit(db_session, member, account, payee, amount="25.00")

        assert isinstance(result, VerificationSubmitted)

    async def test_insufficient_funds(self, db_session, member, make_account, make_payee):
        account = await make_account(member, balance="100.00")
        payee = await make_payee(member)

        result = await _submit(db_session, member, account, payee)

        assert result.code == PaymentErrorCode.INSUFFICIENT_FUNDS
        count = await db_session.execute(
            select(func.count()).select_from(PaymentVerification)
        )
        assert count.scalar_one() == 0

    async def test_foreign_payee(
        self, db_session, member, other_member, make_account, make_payee
    ):
        account = await make_account(member, balance="60000.00")
        payee = await make_payee(other_member)

        result = await _submit(db_session, member, account, payee)

        assert result.code == PaymentErrorCode.PAYEE_NOT_FOUND

    async def test_inactive_account(self, db_session, member, make_account, make_payee):
        account = await make_account(member, balance="60000.00", status="FROZEN")
        payee = await make_payee(member)

        result = await _submit(db_session, member, account, payee)

        assert result.code == PaymentErrorCode.ACCOUNT_NOT_FOUND

    async def test_invalid_amount(self, db_session, member, make_account, make_payee):
        account = await make_account(member, balance="60000.00")
        payee = await make_payee(member)

        result = await _submit(db_session, member, account, payee, amount="-1")

        assert result.code == PaymentErrorCode.INVALID_AMOUNT


class TestApproveVerification:

    async def test_approve_settles_payment(
        self, db_session, member, admin, make_account, make_payee
    ):
        account = await make_account(member, balance="60000.00")
        payee = await make_payee(member, name="Acme Roofing")
        submitted = await _submit(db_session, member, account, payee)

        verification = await verification_service.approve_verification(
            db_session, submitted.verification_id, reviewer_id=admin.id, note="Invoice checked"
        )
        await db_session.commit()

        assert verification.status == VerificationStatus.APPROVED
        assert verification.reviewed_by == admin.id
        assert verification.reviewed_at is not None
        assert verification.review_note == "Invoice checked"
        assert verification.transaction_id is not None
        assert await balance_of(db_session, account.id) == 1000000

        txn = await db_session.get(Transaction, verification.transaction_id)
        assert txn.amount_cents == -5000000
        assert txn.description == "Bill payment to Acme Roofing"

    async def test_approve_with_insufficient_funds_fails(
        self, db_session, member, admin, make_account, make_payee
    ):
        account = await make_account(member, balance="60000.00")
        payee = await make_payee(member)
        submitted = await _submit(db_session, member, account, payee)

        # Balance drops below the payment after submission
        await db_session.execute(
            update(Account).where(Account.id == account.id).values(balance_cents=100)
        )
        await db_session.commit()

        verification = await verification_service.approve_verification(
            db_session, submitted.verification_id, reviewer_id=admin.id
        )
        await db_session.commit()

        assert verification.status == VerificationStatus.FAILED
        assert verification.review_note == verification_service.INSUFFICIENT_FUNDS_NOTE
        assert verification.transaction_id is None
        assert await balance_of(db_session, account.id) == 100

    async def test_approve_with_closed_account_fails(
        self, db_session, member, admin, make_account, make_payee
    ):
        account = await make_account(member, balance="60000.00")
        payee = await make_payee(member)
        submitted = await _submit(db_session, member, account, payee)

        await db_session.execute(
            update(Account).where(Account.id == account.id).values(status="CLOSED")
        )
        await db_session.commit()

        verification = await verification_service.approve_verification(
            db_session, submitted.verification_id, reviewer_id=admin.id
        )

        assert verification.status == VerificationStatus.FAILED
        assert verification.review_note == verification_service.ACCOUNT_INACTIVE_NOTE
        assert await balance_of(db_session, account.id) == 6000000

    async def test_cannot_review_twice(
        self, db_session, member, admin, make_account, make_payee
    ):
        account = await make_account(member, balance="60000.00")
        payee = await make_payee(member)
        submitted = await _submit(db_session, member, account, payee)

        await verification_service.approve_verification(
            db_session, submitted.verification_id, reviewer_id=admin.id
        )
        await db_session.commit()

        with pytest.raises(VerificationStateError):
            await verification_service.approve_verification(
                db_session, submitted.verification_id, reviewer_id=admin.id
            )
        with pytest.raises(VerificationStateError):
            await verification_service.reject_verification(
                db_session, submitted.verification_id, reviewer_id=admin.id
            )
        assert await balance_of(db_session, account.id) == 1000000

    async def test_unknown_verification(self, db_session, admin):
        with pytest.raises(VerificationNotFoundError):
            await verification_service.approve_verification(
                db_session, uuid.uuid4(), reviewer_id=admin.id
            )


class TestRejectVerification:

    async def test_reject_moves_no_money(
        self, db_session, member, admin, make_account, make_payee
    ):
        account = await make_account(member, balance="60000.00")
        payee = await make_payee(member)
        submitted = await _submit(db_session, member, account, payee)

        verification = await verification_service.reject_verification(
            db_session, submitted.verification_id, reviewer_id=admin.id, note="Document unreadable"
        )
        await db_session.commit()

        assert verification.status == VerificationStatus.REJECTED
        assert verification.review_note == "Document unreadable"
        assert verification.transaction_id is None
        assert await balance_of(db_session, account.id) == 6000000


class TestListVerifications:

    async def test_filters_by_status_oldest_first(
        self, db_session, member, admin, make_account, make_payee
    ):
        account = await make_account(member, balance="60000.00")
        payee = await make_payee(member)
        first = await _submit(db_session, member, account, payee, amount="100.00")
        second = await _submit(db_session, member, account, payee, amount="200.00")
        third = await _submit(db_session, member, account, payee, amount="300.00")
        await verification_service.reject_verification(
            db_session, second.verification_id, reviewer_id=admin.id
        )
        await db_session.commit()

        pending = await verification_service.list_verifications(db_session, status_filter="PENDING")
        assert [v.id for v in pending] == [first.verification_id, third.verification_id]

        everything = await verification_service.list_verifications(db_session)
        assert len(everything) == 3
