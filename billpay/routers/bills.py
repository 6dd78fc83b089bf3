"""
Bills router — payees and bill payments.

Endpoints (require JWT, MEMBER role, scoped to the authenticated user):
  GET    /bills                       — Bill payment history
  GET    /bills/payees                — List saved payees
  POST   /bills/payees                — Add a payee
  GET    /bills/config/verification   — Current verification threshold
  POST   /bills/pay                   — Pay a bill
  POST   /bills/pay-verified          — Submit a document-backed payment for review (multipart)
  POST   /bills/upload-invoice        — Read invoice number, amount and vendor from a PDF

Payment responses:
  The payment service returns typed results rather than raising, and this
  router turns each into a status code plus a PaymentResponse body:

    PaymentCompleted       200  success=true, transaction details
    VerificationSubmitted  200  success=true, verification_id
    VerificationRequired   400  requires_verification=true, threshold
    account/payee missing  404
    insufficient funds     400
    invalid amount         400
    internal error         500
"""

import uuid
from decimal import Decimal

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from billpay.database import get_db
from billpay.dependencies import get_bill_payment_service, get_current_member
from billpay.models.user import User
from billpay.schemas.bill import (
    InvoiceUploadResponse,
    ParsedInvoiceResponse,
    PayBillRequest,
    PayeeCreateRequest,
    PayeeResponse,
    PaymentHistoryItem,
    PaymentResponse,
    VerificationConfigResponse,
)
from billpay.services import document_store, invoice_parser, ledger_service, payee_service
from billpay.services.bill_payment_service import BillPaymentService
from billpay.services.results import (
    PaymentCompleted,
    PaymentErrorCode,
    PaymentResult,
    VerificationRequired,
    VerificationSubmitted,
)

router = APIRouter()


_ERROR_STATUS = {
    PaymentErrorCode.REQUIRES_VERIFICATION: status.HTTP_400_BAD_REQUEST,
    PaymentErrorCode.ACCOUNT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    PaymentErrorCode.PAYEE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    PaymentErrorCode.INSUFFICIENT_FUNDS: status.HTTP_400_BAD_REQUEST,
    PaymentErrorCode.INVALID_AMOUNT: status.HTTP_400_BAD_REQUEST,
    PaymentErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _payment_response(result: PaymentResult) -> JSONResponse:
    """Translate a payment service result into an HTTP response."""
    if isinstance(result, PaymentCompleted):
        status_code = status.HTTP_200_OK
        body = PaymentResponse(
            success=True,
            message=result.message,
            transaction_id=result.transaction_id,
            reference=result.reference,
            amount=result.amount,
            new_balance=result.new_balance,
        )
    elif isinstance(result, VerificationSubmitted):
        status_code = status.HTTP_200_OK
        body = PaymentResponse(
            success=True,
            message=result.message,
            verification_id=result.verification_id,
        )
    elif isinstance(result, VerificationRequired):
        status_code = _ERROR_STATUS[result.code]
        body = PaymentResponse(
            success=False,
            error=result.error,
            error_type=result.code.value,
            message=result.message,
            requires_verification=True,
            threshold=result.threshold,
        )
    else:
        status_code = _ERROR_STATUS[result.code]
        body = PaymentResponse(
            success=False,
            error=result.error,
            error_type=result.code.value,
        )

    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True),
    )


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=list[PaymentHistoryItem],
    summary="Bill payment history",
)
async def list_bill_payments(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    """List completed bill payments across all of your accounts, newest first."""
    return await ledger_service.get_payment_history(db, user.id, limit=limit, offset=offset)


# ---------------------------------------------------------------------------
# Payees
# ---------------------------------------------------------------------------

@router.get(
    "/payees",
    response_model=list[PayeeResponse],
    summary="List your payees",
)
async def list_payees(
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    return await payee_service.get_payees(db, user.id)


@router.post(
    "/payees",
    response_model=PayeeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a payee",
)
async def add_payee(
    request: PayeeCreateRequest,
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    """
    Save a biller so bills can be paid to it.

    - **category**: Copied onto every payment to this payee (stored upper-case)
    """
    return await payee_service.add_payee(
        db=db,
        user_id=user.id,
        name=request.name,
        account_number=request.account_number,
        category=request.category,
    )


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

@router.get(
    "/config/verification",
    response_model=VerificationConfigResponse,
    summary="Verification threshold",
)
async def get_verification_config(
    user: User = Depends(get_current_member),
    service: BillPaymentService = Depends(get_bill_payment_service),
):
    """Payments at or above this amount must go through /bills/pay-verified."""
    return VerificationConfigResponse(threshold=await service.get_verification_threshold())


@router.post(
    "/pay",
    response_model=PaymentResponse,
    summary="Pay a bill",
)
async def pay_bill(
    request: PayBillRequest,
    user: User = Depends(get_current_member),
    service: BillPaymentService = Depends(get_bill_payment_service),
):
    """
    Pay a bill from one of your accounts to one of your payees.

    - **amount**: Positive, at most two decimal places, below the
      verification threshold
    - **reference**: Optional. Invoice numbers starting with "INV-" notify
      the biller's webhook once the payment has gone through
    """
    result = await service.process_payment(
        user_id=user.id,
        payee_id=request.payee_id,
        account_id=request.account_id,
        amount=request.amount,
        reference=request.reference,
    )
    return _payment_response(result)


@router.post(
    "/pay-verified",
    response_model=PaymentResponse,
    summary="Submit a document-backed payment for review",
)
async def pay_bill_verified(
    payee_id: uuid.UUID = Form(...),
    account_id: uuid.UUID = Form(...),
    amount: Decimal = Form(...),
    document: UploadFile | None = File(None, description="PDF, PNG or JPEG"),
    user: User = Depends(get_current_member),
    service: BillPaymentService = Depends(get_bill_payment_service),
):
    """
    Submit a large payment together with its supporting document
    (multipart/form-data).

    Funds are not moved until a reviewer approves the payment. The document
    is kept only if the payment is accepted for review.
    """
    document_path = await document_store.save_verification_document(document, user.id)
    try:
        result = await service.process_verified_payment(
            user_id=user.id,
            payee_id=payee_id,
            account_id=account_id,
            amount=amount,
            document_path=document_path,
        )
    except Exception:
        await document_store.discard_document(document_path)
        raise

    if not isinstance(result, VerificationSubmitted):
        await document_store.discard_document(document_path)
    return _payment_response(result)


@router.post(
    "/upload-invoice",
    response_model=InvoiceUploadResponse,
    summary="Read payment details from an invoice PDF",
)
async def upload_invoice(
    file: UploadFile | None = File(None),
    user: User = Depends(get_current_member),
):
    """
    Parse an invoice PDF so its invoice number, amount and vendor can be
    used to fill in a payment. Nothing is stored.

    Use the returned **invoice_number** as the payment reference: "INV-..."
    numbers notify the biller once paid.
    """
    content = await document_store.read_upload(file, {"application/pdf"})
    invoice = await run_in_threadpool(invoice_parser.parse_invoice_pdf, content)
    return InvoiceUploadResponse(data=ParsedInvoiceResponse.model_validate(invoice))
