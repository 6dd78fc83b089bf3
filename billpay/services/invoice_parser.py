"""
Invoice parsing for POST /bills/upload-invoice.

Pulls the text layer out of an uploaded PDF with pypdf, then picks the
fields a member needs to fill in a bill payment with regular expressions:

    invoice_number   "INV-2041", "Invoice #: 7781-A"  (INV- numbers win)
    amount           "Total Due: $1,250.00", then "Amount Due: ...", then any "$1,250.00"
    currency         from the currency symbol, USD when there is none
    invoice_date     MM/DD/YYYY or YYYY-MM-DD
    vendor_name      "From: Acme Roofing LLC"
    service_code     "Service Code: ELEC-01"
    reference_code   "Reference Code: 4471/B", "Reference ID: ..."
    loan_code        "LOAN-5521"
    payment_pin      "Payment PIN: 8812"
    principal, tax   breakdown lines, when the invoice has them

Every field is optional: an invoice the patterns don't recognise parses to
an empty result, not an error. Only a file with no readable text at all
(scanned images, corrupt PDFs) raises InvoiceParseError.
"""

import io
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

import structlog
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from billpay.exceptions import InvalidDocumentError, InvoiceParseError

logger = structlog.get_logger(__name__)

PDF_MAGIC = b"%PDF-"

_MONEY = r"([$€£])?\s*(\d{1,3}(?:,\d{3})+\.\d{2}|\d+\.\d{2})"

_INV_NUMBER = re.compile(r"\b(INV-[A-Z0-9]+(?:-[A-Z0-9]+)*)")
_INVOICE_LABEL = re.compile(
    r"\bInvoice\s*(?:Number|No\.?|#)\s*[:#]?\s*([A-Za-z0-9][A-Za-z0-9-]*)", re.IGNORECASE
)
_TOTAL = re.compile(r"\bTotal\s*(?:Due|Payable)?\s*[:.]?\s*" + _MONEY, re.IGNORECASE)
_AMOUNT_DUE = re.compile(
    r"\b(?:Amount|Balance)\s*(?:Due|Payable)\s*[:.]?\s*" + _MONEY, re.IGNORECASE
)
_ANY_MONEY = re.compile(r"([$€£])\s*(\d{1,3}(?:,\d{3})+\.\d{2}|\d+\.\d{2})")
_US_DATE = re.compile(r"\b(\d{1,2}/\d{1,2}/\d{4})\b")
_ISO_DATE = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")
_VENDOR = re.compile(r"^\s*From:\s*([A-Za-z0-9 ,.&'-]+?)\s*$", re.IGNORECASE | re.MULTILINE)
_SERVICE_CODE = re.compile(r"\bService\s*Code\s*[:.]?\s*([A-Z0-9-]+)", re.IGNORECASE)
_REFERENCE_CODE = re.compile(r"\bReference\s*(?:Code|ID)\s*[:.]?\s*([A-Z0-9/-]+)", re.IGNORECASE)
_LOAN_CODE = re.compile(r"\b(LOAN-\d+)\b")
_PAYMENT_PIN = re.compile(r"\bPayment\s*(?:Reference\s*)?PIN\s*[:.]?\s*([A-Z0-9]+)", re.IGNORECASE)
_PRINCIPAL = re.compile(r"\bPrincipal\s*(?:Amount)?\s*[:.]?\s*" + _MONEY, re.IGNORECASE)
_TAX = re.compile(r"\bTax\s*[:.]?\s*" + _MONEY, re.IGNORECASE)

_CURRENCY_BY_SYMBOL = {"$": "USD", "€": "EUR", "£": "GBP"}


@dataclass(frozen=True)
class ParsedInvoice:
    invoice_number: str | None = None
    amount: Decimal | None = None
    currency: str = "USD"
    invoice_date: date | None = None
    vendor_name: str | None = None
    service_code: str | None = None
    reference_code: str | None = None
    loan_code: str | None = None
    payment_pin: str | None = None
    principal: Decimal | None = None
    tax: Decimal | None = None


def _to_decimal(raw: str) -> Decimal | None:
    try:
        return Decimal(raw.replace(",", ""))
    except InvalidOperation:
        return None


def _first_group(pattern: re.Pattern, text: str) -> str | None:
    match = pattern.search(text)
    return match.group(1) if match else None


def _parse_date(text: str) -> date | None:
    for pattern, fmt in ((_ISO_DATE, "%Y-%m-%d"), (_US_DATE, "%m/%d/%Y")):
        for raw in pattern.findall(text):
            try:
                return datetime.strptime(raw, fmt).date()
            except ValueError:
                continue
    return None


def _money(pattern: re.Pattern, text: str) -> tuple[str | None, Decimal | None]:
    match = pattern.search(text)
    if match is None:
        return None, None
    return match.group(1), _to_decimal(match.group(2))


def extract_invoice_fields(text: str) -> ParsedInvoice:
    """Pick invoice fields out of plain text. Missing fields stay None."""
    for pattern in (_TOTAL, _AMOUNT_DUE, _ANY_MONEY):
        symbol, amount = _money(pattern, text)
        if amount is not None:
            break

    return ParsedInvoice(
        invoice_number=_first_group(_INV_NUMBER, text) or _first_group(_INVOICE_LABEL, text),
        amount=amount,
        currency=_CURRENCY_BY_SYMBOL.get(symbol, "USD"),
        invoice_date=_parse_date(text),
        vendor_name=_first_group(_VENDOR, text),
        service_code=_first_group(_SERVICE_CODE, text),
        reference_code=_first_group(_REFERENCE_CODE, text),
        loan_code=_first_group(_LOAN_CODE, text),
        payment_pin=_first_group(_PAYMENT_PIN, text),
        principal=_money(_PRINCIPAL, text)[1],
        tax=_money(_TAX, text)[1],
    )


def extract_pdf_text(content: bytes) -> str:
    """
    Return the text layer of every page, joined by newlines.

    Raises:
        InvalidDocumentError: The bytes are not a PDF.
        InvoiceParseError: pypdf cannot read it, or it has no text layer.
    """
    if not content.startswith(PDF_MAGIC):
        raise InvalidDocumentError("Only PDF files are allowed")

    try:
        reader = PdfReader(io.BytesIO(content))
        pages = [page.extract_text() or "" for page in reader.pages]
    except PyPdfError as exc:
        logger.info("invoice_pdf_unreadable", error=str(exc))
        raise InvoiceParseError("The PDF could not be read") from exc

    text = "\n".join(pages).strip()
    if not text:
        raise InvoiceParseError("The PDF has no text layer; scanned invoices are not supported")
    return text


def parse_invoice_pdf(content: bytes) -> ParsedInvoice:
    invoice = extract_invoice_fields(extract_pdf_text(content))
    logger.info(
        "invoice_parsed",
        invoice_number=invoice.invoice_number,
        amount=str(invoice.amount) if invoice.amount is not None else None,
    )
    return invoice
