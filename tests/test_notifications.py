"""
Tests for invoice webhook delivery (outbox + dispatcher).

These tests verify:
  - A committed INV- payment is delivered to the webhook with the invoice
    number, amount and transaction reference
  - Bodies are HMAC-signed when a secret is configured
  - Failed deliveries are retried with backoff and abandoned after
    max_attempts, without touching the payment
  - Nothing is sent (or lost) while no webhook URL is configured
  - The background loop survives a failed pass and stops on cancellation
"""

import asyncio
import hashlib
import hmac
import json
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy import select

from billpay.models.notification_outbox import NotificationOutbox, OutboxStatus
from billpay.services.bill_payment_service import BillPaymentService
from billpay.services.notification_service import (
    NotificationDispatcher,
    WebhookClient,
    enqueue_invoice_notification,
)
from billpay.services.results import PaymentCompleted

from conftest import balance_of

WEBHOOK_URL = "https://billers.example.com/hooks/invoice-paid"


class RecordingHandler:
    """httpx.MockTransport handler that records requests and replays statuses."""

    def __init__(self, statuses=(200,)):
        self.statuses = list(statuses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return httpx.Response(status, json={"ok": status < 300})


def _dispatcher(session_factory, handler, secret=None, max_attempts=5):
    client = WebhookClient(
        url=WEBHOOK_URL,
        secret=secret,
        transport=httpx.MockTransport(handler),
    )
    return NotificationDispatcher(
        session_factory=session_factory,
        client=client,
        max_attempts=max_attempts,
    )


async def _outbox_rows(session_factory) -> list[NotificationOutbox]:
    async with session_factory() as db:
        result = await db.execute(select(NotificationOutbox).order_by(NotificationOutbox.id))
        return list(result.scalars().all())


class TestInvoicePaymentWebhook:

    async def test_invoice_payment_is_delivered(
        self,
        db_session,
        session_factory,
        member,
        make_account,
        make_payee,
        set_threshold,
    ):
        await set_threshold("1000")
        account = await make_account(member, balance="2000.00")
        payee = await make_payee(member)

        result = await BillPaymentService(db_session).process_payment(
            member.id, payee.id, account.id, Decimal("100"), reference="INV-55"
        )
        await db_session.commit()
        assert isinstance(result, PaymentCompleted)
        assert await balance_of(db_session, account.id) == 190000

        handler = RecordingHandler()
        dispatcher = _dispatcher(session_factory, handler)
        delivered = await dispatcher.dispatch_pending()
        await dispatcher.client.aclose()

        assert delivered == 1
        assert len(handler.requests) == 1
        request = handler.requests[0]
        assert str(request.url) == WEBHOOK_URL
        assert request.method == "POST"
        body = json.loads(request.content)
        assert body["event"] == "invoice.paid"
        assert body["invoiceNumber"] == "INV-55"
        assert body["amount"] == "100.00"
        assert body["transactionRef"] == result.reference
        assert "occurredAt" in body
        assert "X-Webhook-Signature" not in request.headers

        [row] = await _outbox_rows(session_factory)
        assert row.status == OutboxStatus.SENT
        assert row.attempts == 1
        assert row.sent_at is not None

        # Already delivered rows are not sent again
        handler = RecordingHandler()
        dispatcher = _dispatcher(session_factory, handler)
        assert await dispatcher.dispatch_pending() == 0
        assert handler.requests == []
        await dispatcher.client.aclose()

    async def test_rolled_back_payment_sends_nothing(
        self, db_session, session_factory, member, make_account, make_payee
    ):
        account = await make_account(member, balance="500.00")
        payee = await make_payee(member)

        await BillPaymentService(db_session).process_payment(
            member.id, payee.id, account.id, Decimal("100"), reference="INV-77"
        )
        await db_session.rollback()

        handler = RecordingHandler()
        dispatcher = _dispatcher(session_factory, handler)
        assert await dispatcher.dispatch_pending() == 0
        assert handler.requests == []
        assert await balance_of(db_session, account.id) == 50000
        await dispatcher.client.aclose()

    async def test_signature_header(self, db_session, session_factory):
        await enqueue_invoice_notification(
            db_session, invoice_number="INV-1", amount=Decimal("12.00"), transaction_ref="BP1"
        )
        await db_session.commit()

        handler = RecordingHandler()
        dispatcher = _dispatcher(session_factory, handler, secret="hook-secret")
        await dispatcher.dispatch_pending()
        await dispatcher.client.aclose()

        request = handler.requests[0]
        expected = hmac.new(b"hook-secret", request.content, hashlib.sha256).hexdigest()
        assert request.headers["X-Webhook-Signature"] == f"sha256={expected}"


class TestDeliveryRetries:

    async def test_failure_is_retried_later(self, db_session, session_factory):
        await enqueue_invoice_notification(
            db_session, invoice_number="INV-2", amount=Decimal("5.00"), transaction_ref="BP2"
        )
        await db_session.commit()

        handler = RecordingHandler(statuses=[503])
        dispatcher = _dispatcher(session_factory, handler)
        assert await dispatcher.dispatch_pending() == 0

        [row] = await _outbox_rows(session_factory)
        assert row.status == OutboxStatus.PENDING
        assert row.attempts == 1
        assert "503" in row.last_error

        # Not due yet: the backoff keeps the row out of the next pass
        assert await dispatcher.dispatch_pending() == 0
        assert len(handler.requests) == 1
        await dispatcher.client.aclose()

    async def test_abandoned_after_max_attempts(self, db_session, session_factory):
        await enqueue_invoice_notification(
            db_session, invoice_number="INV-3", amount=Decimal("5.00"), transaction_ref="BP3"
        )
        await db_session.commit()

        handler = RecordingHandler(statuses=[500])
        dispatcher = _dispatcher(session_factory, handler, max_attempts=1)
        assert await dispatcher.dispatch_pending() == 0
        await dispatcher.client.aclose()

        [row] = await _outbox_rows(session_factory)
        assert row.status == OutboxStatus.FAILED
        assert row.attempts == 1

    async def test_connection_error_is_recorded(self, db_session, session_factory):
        await enqueue_invoice_notification(
            db_session, invoice_number="INV-4", amount=Decimal("5.00"), transaction_ref="BP4"
        )
        await db_session.commit()

        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        dispatcher = _dispatcher(session_factory, refuse)
        assert await dispatcher.dispatch_pending() == 0
        await dispatcher.client.aclose()

        [row] = await _outbox_rows(session_factory)
        assert row.status == OutboxStatus.PENDING
        assert "connection refused" in row.last_error

    def test_backoff_grows_and_caps(self):
        assert NotificationDispatcher.backoff_delay(1) == timedelta(seconds=2)
        assert NotificationDispatcher.backoff_delay(2) == timedelta(seconds=4)
        assert NotificationDispatcher.backoff_delay(3) == timedelta(seconds=8)
        assert NotificationDispatcher.backoff_delay(20) == timedelta(seconds=300)


class TestWithoutWebhook:

    async def test_rows_wait_until_configured(self, db_session, session_factory):
        await enqueue_invoice_notification(
            db_session, invoice_number="INV-5", amount=Decimal("5.00"), transaction_ref="BP5"
        )
        await db_session.commit()

        dispatcher = NotificationDispatcher(session_factory=session_factory, client=None)
        assert await dispatcher.dispatch_pending() == 0

        [row] = await _outbox_rows(session_factory)
        assert row.status == OutboxStatus.PENDING
        assert row.attempts == 0


class TestDispatcherLoop:

    async def test_keeps_polling_after_a_failed_pass(self, session_factory):
        dispatcher = NotificationDispatcher(
            session_factory=session_factory, client=None, poll_interval_seconds=0
        )
        dispatcher.dispatch_pending = AsyncMock(
            side_effect=[RuntimeError("outbox row could not be decoded"), 0, asyncio.CancelledError()]
        )

        with pytest.raises(asyncio.CancelledError):
            await dispatcher.run()

        assert dispatcher.dispatch_pending.await_count == 3

    async def test_cancellation_stops_the_loop(self, session_factory):
        dispatcher = NotificationDispatcher(
            session_factory=session_factory, client=None, poll_interval_seconds=0.01
        )
        task = asyncio.create_task(dispatcher.run())
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
