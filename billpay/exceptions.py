"""
Custom exception classes and FastAPI exception handlers.

Payment outcomes (insufficient funds, unknown payee, ...) are NOT exceptions
in this service — the payment service returns typed result objects for those
(see billpay.services.results). The exceptions below cover everything else:
  - infrastructure failures the caller may retry
  - ownership/role violations
  - review-workflow errors on payment verifications

The router/handler layer translates each into a consistent JSON body:
    {"detail": "...", "error_type": "..."}

Exception hierarchy:
    BankAPIError (base)
    ├── StorageUnavailableError    — database unreachable (503, retriable)
    ├── AccountNotFoundError       — requested account doesn't exist
    ├── UnauthorizedAccessError    — user trying to access another's resource
    ├── VerificationNotFoundError  — unknown payment verification id
    ├── VerificationStateError     — review of a non-pending verification
    ├── InvalidThresholdError      — non-positive verification threshold
    ├── InvalidDocumentError       — missing, empty or wrong-type upload (400)
    ├── DocumentTooLargeError      — upload over MAX_UPLOAD_BYTES (413)
    └── InvoiceParseError          — PDF without a readable text layer (422)
"""

import uuid

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

logger = structlog.get_logger(__name__)

# Seconds a client should wait before retrying after a 503
STORAGE_RETRY_AFTER_SECONDS = 5


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class BankAPIError(Exception):
    """Base exception for all Bill Payment API errors."""

    retriable: bool = False

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------

class StorageUnavailableError(BankAPIError):
    """
    Raised when the database cannot be reached or the connection dropped.

    Distinct from domain failures: nothing about the request was wrong, so
    the caller may retry it as-is.
    """

    retriable = True

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Storage unavailable during {operation}")


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------

class AccountNotFoundError(BankAPIError):
    """Raised when a requested account does not exist."""

    def __init__(self, account_id: uuid.UUID):
        self.account_id = account_id
        super().__init__(f"Account {account_id} not found")


class UnauthorizedAccessError(BankAPIError):
    """Raised when a user attempts to access a resource they don't own."""

    def __init__(self, detail: str = "You do not have access to this resource"):
        super().__init__(detail)


class VerificationNotFoundError(BankAPIError):
    """Raised when a payment verification id does not exist."""

    def __init__(self, verification_id: uuid.UUID):
        self.verification_id = verification_id
        super().__init__(f"Payment verification {verification_id} not found")


class VerificationStateError(BankAPIError):
    """Raised when approving or rejecting a verification that is no longer pending."""

    def __init__(self, verification_id: uuid.UUID, current_status: str):
        self.verification_id = verification_id
        self.current_status = current_status
        super().__init__(
            f"Payment verification {verification_id} is {current_status}, "
            f"only PENDING verifications can be reviewed"
        )


class InvalidThresholdError(BankAPIError):
    """Raised when an admin tries to store a non-positive verification threshold."""

    def __init__(self, value):
        self.value = value
        super().__init__(f"Verification threshold must be positive, got {value}")


class InvalidDocumentError(BankAPIError):
    """Raised when an uploaded document is missing, empty or of a type we don't accept."""


class DocumentTooLargeError(BankAPIError):
    """Raised when an upload exceeds MAX_UPLOAD_BYTES."""

    def __init__(self, limit_bytes: int):
        self.limit_bytes = limit_bytes
        super().__init__(f"Documents are limited to {limit_bytes} bytes")


class InvoiceParseError(BankAPIError):
    """Raised when an invoice PDF cannot be read or carries no text."""


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def _storage_unavailable_response(detail: str, retriable: bool) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        headers={"Retry-After": str(STORAGE_RETRY_AFTER_SECONDS)} if retriable else None,
        content={
            "detail": detail,
            "error_type": "storage_unavailable",
            "retriable": retriable,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register custom exception handlers with the FastAPI application.

    Each handler maps a domain exception to an HTTP status code and
    consistent JSON response format: {"detail": "error message"}

    This is called once during app startup in main.py.
    """

    @app.exception_handler(StorageUnavailableError)
    async def storage_unavailable_handler(
        request: Request, exc: StorageUnavailableError
    ) -> JSONResponse:
        return _storage_unavailable_response(exc.detail, exc.retriable)

    @app.exception_handler(OperationalError)
    async def operational_error_handler(
        request: Request, exc: OperationalError
    ) -> JSONResponse:
        # Raised outside the payment service (e.g. listing endpoints)
        logger.error(
            "storage_unavailable",
            path=request.url.path,
            error=str(exc.orig) if exc.orig is not None else str(exc),
        )
        return _storage_unavailable_response(
            "Storage unavailable", StorageUnavailableError.retriable
        )

    @app.exception_handler(AccountNotFoundError)
    async def account_not_found_handler(
        request: Request, exc: AccountNotFoundError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={"detail": exc.detail, "error_type": "account_not_found"},
        )

    @app.exception_handler(UnauthorizedAccessError)
    async def unauthorized_access_handler(
        request: Request, exc: UnauthorizedAccessError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=403,
            content={"detail": exc.detail, "error_type": "unauthorized_access"},
        )

    @app.exception_handler(VerificationNotFoundError)
    async def verification_not_found_handler(
        request: Request, exc: VerificationNotFoundError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={"detail": exc.detail, "error_type": "verification_not_found"},
        )

    @app.exception_handler(VerificationStateError)
    async def verification_state_handler(
        request: Request, exc: VerificationStateError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=409,  # Already reviewed
            content={
                "detail": exc.detail,
                "error_type": "verification_not_pending",
                "current_status": exc.current_status,
            },
        )

    @app.exception_handler(InvalidThresholdError)
    async def invalid_threshold_handler(
        request: Request, exc: InvalidThresholdError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": exc.detail, "error_type": "invalid_threshold"},
        )

    @app.exception_handler(InvalidDocumentError)
    async def invalid_document_handler(
        request: Request, exc: InvalidDocumentError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"detail": exc.detail, "error_type": "invalid_document"},
        )

    @app.exception_handler(DocumentTooLargeError)
    async def document_too_large_handler(
        request: Request, exc: DocumentTooLargeError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=413,
            content={"detail": exc.detail, "error_type": "document_too_large"},
        )

    @app.exception_handler(InvoiceParseError)
    async def invoice_parse_handler(
        request: Request, exc: InvoiceParseError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": exc.detail, "error_type": "invoice_unreadable"},
        )
