"""
Typed outcomes of the bill payment operations.

process_payment() and process_verified_payment() never raise for a business
outcome; they return exactly one of:

    PaymentCompleted       success=True   money moved, ledger row written
    VerificationSubmitted  success=True   pending review, no money moved
    VerificationRequired   success=False  amount at/over threshold, nothing touched
    PaymentRejected        success=False  one of PaymentErrorCode

so callers branch with isinstance() (or on `success` /
`requires_verification`) instead of wrapping calls in try/except.
Infrastructure failures are the exception: they raise
StorageUnavailableError.
"""

import enum
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar, Union


class PaymentErrorCode(str, enum.Enum):
    REQUIRES_VERIFICATION = "requires_verification"
    ACCOUNT_NOT_FOUND = "account_not_found"
    PAYEE_NOT_FOUND = "payee_not_found"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    INVALID_AMOUNT = "invalid_amount"
    INTERNAL_ERROR = "internal_error"


# Human-readable messages, shown to end users as-is
ERROR_MESSAGES = {
    PaymentErrorCode.REQUIRES_VERIFICATION: "Verification required",
    PaymentErrorCode.ACCOUNT_NOT_FOUND: "Account not found",
    PaymentErrorCode.PAYEE_NOT_FOUND: "Payee not found",
    PaymentErrorCode.INSUFFICIENT_FUNDS: "Insufficient funds",
    PaymentErrorCode.INVALID_AMOUNT: "Invalid amount",
    PaymentErrorCode.INTERNAL_ERROR: "Failed to process payment",
}


@dataclass(frozen=True)
class PaymentCompleted:
    transaction_id: uuid.UUID
    reference: str
    amount: Decimal
    new_balance: Decimal
    message: str = "Payment successful"

    success: ClassVar[bool] = True
    requires_verification: ClassVar[bool] = False


@dataclass(frozen=True)
class VerificationSubmitted:
    verification_id: uuid.UUID
    message: str = "Payment submitted for verification"

    success: ClassVar[bool] = True
    requires_verification: ClassVar[bool] = False


@dataclass(frozen=True)
class VerificationRequired:
    threshold: Decimal

    success: ClassVar[bool] = False
    requires_verification: ClassVar[bool] = True
    code: ClassVar[PaymentErrorCode] = PaymentErrorCode.REQUIRES_VERIFICATION

    @property
    def error(self) -> str:
        return ERROR_MESSAGES[self.code]

    @property
    def message(self) -> str:
        return (
            f"Payments of {self.threshold} or more require document verification"
        )


@dataclass(frozen=True)
class PaymentRejected:
    code: PaymentErrorCode

    success: ClassVar[bool] = False
    requires_verification: ClassVar[bool] = False

    @property
    def error(self) -> str:
        return ERROR_MESSAGES[self.code]


PaymentResult = Union[
    PaymentCompleted,
    VerificationSubmitted,
    VerificationRequired,
    PaymentRejected,
]
