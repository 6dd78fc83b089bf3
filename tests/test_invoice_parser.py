"""
Tests for invoice parsing.

These tests verify:
  - Invoice number, total, date, vendor and the banking codes are read
    from invoice text
  - INV- numbers win over other "Invoice #" labels; totals win over
    line items
  - Unrecognised text parses to an empty result rather than an error
  - PDFs are read through their text layer; non-PDF bytes and text-less
    PDFs are refused
"""

from datetime import date
from decimal import Decimal

import pytest

from billpay.exceptions import InvalidDocumentError, InvoiceParseError
from billpay.services.invoice_parser import (
    ParsedInvoice,
    extract_invoice_fields,
    extract_pdf_text,
    parse_invoice_pdf,
)

from conftest import make_pdf

UTILITY_INVOICE = """\
From: City Power & Light
Invoice Number: INV-2026-0417
Invoice Date: 04/17/2026
Service Code: ELEC-01
Reference Code: 4471/B
Payment PIN: 8812
Principal Amount: $1,180.00
Tax: $70.00
Subtotal: $1,250.00
Total Due: $1,250.00
"""


class TestExtractInvoiceFields:

    def test_utility_invoice(self):
        invoice = extract_invoice_fields(UTILITY_INVOICE)

        assert invoice.invoice_number == "INV-2026-0417"
        assert invoice.amount == Decimal("1250.00")
        assert invoice.currency == "USD"
        assert invoice.invoice_date == date(2026, 4, 17)
        assert invoice.vendor_name == "City Power & Light"
        assert invoice.service_code == "ELEC-01"
        assert invoice.reference_code == "4471/B"
        assert invoice.payment_pin == "8812"
        assert invoice.principal == Decimal("1180.00")
        assert invoice.tax == Decimal("70.00")

    def test_labelled_number_without_inv_prefix(self):
        invoice = extract_invoice_fields("Invoice #: 7781-A\nAmount Due: 92.40")
        assert invoice.invoice_number == "7781-A"
        assert invoice.amount == Decimal("92.40")

    def test_inv_number_wins_over_label(self):
        invoice = extract_invoice_fields("Invoice No. 55\nRef INV-9001\nTotal: $10.00")
        assert invoice.invoice_number == "INV-9001"

    def test_total_wins_over_earlier_line_items(self):
        text = "Gutter cleaning $150.00\nMaterials $75.50\nTotal: $225.50"
        assert extract_invoice_fields(text).amount == Decimal("225.50")

    def test_falls_back_to_any_currency_amount(self):
        invoice = extract_invoice_fields("Please remit £42.10 by Friday")
        assert invoice.amount == Decimal("42.10")
        assert invoice.currency == "GBP"

    def test_euro_total(self):
        invoice = extract_invoice_fields("Total Payable: €3,400.00")
        assert invoice.amount == Decimal("3400.00")
        assert invoice.currency == "EUR"

    def test_iso_date_and_loan_code(self):
        invoice = extract_invoice_fields("Statement 2026-01-31 for LOAN-5521")
        assert invoice.invoice_date == date(2026, 1, 31)
        assert invoice.loan_code == "LOAN-5521"

    def test_impossible_date_is_ignored(self):
        assert extract_invoice_fields("Due 13/45/2026").invoice_date is None

    def test_unrecognised_text(self):
        assert extract_invoice_fields("Thank you for your business") == ParsedInvoice()


class TestPdfText:

    def test_reads_text_layer(self):
        text = extract_pdf_text(make_pdf(["From: Acme Roofing LLC", "Total Due: $1,250.00"]))
        assert "Acme Roofing LLC" in text
        assert "1,250.00" in text

    def test_parse_invoice_pdf(self):
        invoice = parse_invoice_pdf(make_pdf(["Total Due: $1,250.00", "Invoice #: INV-2041"]))
        assert invoice.invoice_number == "INV-2041"
        assert invoice.amount == Decimal("1250.00")

    def test_rejects_non_pdf_bytes(self):
        with pytest.raises(InvalidDocumentError):
            extract_pdf_text(b"\x89PNG\r\n\x1a\n")

    def test_rejects_pdf_without_text(self):
        with pytest.raises(InvoiceParseError):
            extract_pdf_text(make_pdf([]))

