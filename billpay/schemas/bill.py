"""
Pydantic schemas for the /bills endpoints.

Amounts are decimals on the wire ("100.00" or 100) and are NOT range-checked
here: the payment service owns amount validation so that a bad amount comes
back as the same structured "Invalid amount" result as every other payment
failure.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, computed_field, field_validator

from billpay.money import CENT, from_cents


class PayeeCreateRequest(BaseModel):
    """Request body for POST /bills/payees."""
    name: str = Field(min_length=1, max_length=200)
    account_number: str = Field(min_length=1, max_length=50)
    category: str = Field(min_length=1, max_length=50)


class PayeeResponse(BaseModel):
    id: uuid.UUID
    name: str
    account_number: str
    category: str
    created_at: datetime

    model_config = {"from_attributes": True}


class PayBillRequest(BaseModel):
    """Request body for POST /bills/pay."""
    payee_id: uuid.UUID
    account_id: uuid.UUID
    amount: Decimal
    reference: str | None = Field(
        None,
        max_length=100,
        description='Invoice number or free text. "INV-..." triggers an invoice webhook.',
    )


class PaymentResponse(BaseModel):
    """Body returned by both payment endpoints, success or not."""
    success: bool
    message: str | None = None
    error: str | None = None
    error_type: str | None = None
    requires_verification: bool = False
    threshold: Decimal | None = None
    transaction_id: uuid.UUID | None = None
    reference: str | None = None
    amount: Decimal | None = None
    new_balance: Decimal | None = None
    verification_id: uuid.UUID | None = None

    @field_validator("threshold")
    @classmethod
    def _two_places(cls, value: Decimal | None) -> Decimal | None:
        return value.quantize(CENT) if value is not None else None


class VerificationConfigResponse(BaseModel):
    threshold: Decimal

    @field_validator("threshold")
    @classmethod
    def _two_places(cls, value: Decimal) -> Decimal:
        return value.quantize(CENT)


class PaymentHistoryItem(BaseModel):
    """A bill payment ledger row."""
    id: uuid.UUID
    account_id: uuid.UUID
    currency: str
    status: str
    category: str | None
    description: str | None
    reference: str
    invoice_reference: str | None
    completed_at: datetime | None
    created_at: datetime
    amount_cents: int = Field(exclude=True)

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def amount(self) -> Decimal:
        return from_cents(self.amount_cents)


class ParsedInvoiceResponse(BaseModel):
    """Fields read from an uploaded invoice; anything not found is null."""
    invoice_number: str | None
    amount: Decimal | None
    currency: str
    invoice_date: date | None
    vendor_name: str | None
    service_code: str | None
    reference_code: str | None
    loan_code: str | None
    payment_pin: str | None
    principal: Decimal | None
    tax: Decimal | None

    model_config = {"from_attributes": True}


class InvoiceUploadResponse(BaseModel):
    """Body returned by POST /bills/upload-invoice."""
    success: bool = True
    data: ParsedInvoiceResponse
