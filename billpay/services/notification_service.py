"""
Invoice payment notifications — transactional outbox + webhook delivery.

Two halves, deliberately separated:

  1. enqueue_invoice_notification() runs INSIDE the payment's database
     transaction and only inserts a NotificationOutbox row. If the payment
     rolls back, so does the notification; if the payment commits, the
     notification is guaranteed to exist.

  2. NotificationDispatcher runs OUTSIDE the request path (a background
     task started by the application lifespan). It picks up due PENDING
     rows, POSTs them to the configured webhook, and records the outcome.
     Failures are logged and retried with exponential backoff until
     WEBHOOK_MAX_ATTEMPTS, after which the row is marked FAILED.

Nothing in this module can fail or slow down a payment response.

Webhook request:
    POST {WEBHOOK_URL}
    Content-Type: application/json
    X-Webhook-Signature: sha256=<hex HMAC of the body>   (only if WEBHOOK_SECRET)

    {"event": "invoice.paid", "invoiceNumber": "INV-55", "amount": "100.00",
     "transactionRef": "BP12345678ABCDEF01", "occurredAt": "2026-..."}
"""

import asyncio
import hashlib
import hmac
import json
import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import httpx
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from billpay.config import settings
from billpay.models.notification_outbox import NotificationOutbox, OutboxStatus

logger = structlog.get_logger(__name__)

INVOICE_REFERENCE_PATTERN = re.compile(r"^INV-")
INVOICE_PAID_EVENT = "invoice.paid"

# Retry delays: 2s, 4s, 8s, ... capped at five minutes
BACKOFF_BASE_SECONDS = 2.0
BACKOFF_MAX_SECONDS = 300.0


def is_invoice_reference(reference: str | None) -> bool:
    """True when a payment reference looks like an invoice number (case-sensitive "INV-" prefix)."""
    return reference is not None and INVOICE_REFERENCE_PATTERN.match(reference) is not None


async def enqueue_invoice_notification(
    db: AsyncSession,
    invoice_number: str,
    amount: Decimal,
    transaction_ref: str,
) -> NotificationOutbox:
    """
    Queue an invoice-paid webhook in the caller's transaction.

    The caller owns the transaction; this only adds and flushes the row.
    """
    message = NotificationOutbox(
        event_type=INVOICE_PAID_EVENT,
        payload={
            "event": INVOICE_PAID_EVENT,
            "invoiceNumber": invoice_number,
            "amount": str(amount),
            "transactionRef": transaction_ref,
            "occurredAt": datetime.now(timezone.utc).isoformat(),
        },
        status=OutboxStatus.PENDING,
    )
    db.add(message)
    await db.flush()
    return message


class WebhookDeliveryError(Exception):
    """The webhook endpoint answered, but not with a 2xx status."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Webhook returned HTTP {status_code}: {body[:200]}")


class WebhookClient:
    """Thin async HTTP client for the invoice webhook endpoint."""

    def __init__(
        self,
        url: str,
        secret: str | None = None,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.secret = secret
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    def sign(self, body: bytes) -> str:
        digest = hmac.new(self.secret.encode(), body, hashlib.sha256).hexdigest()
        return f"sha256={digest}"

    async def send(self, payload: dict) -> None:
        """
        POST one payload.

        Raises:
            httpx.HTTPError: On connection errors and timeouts.
            WebhookDeliveryError: On any non-2xx response.
        """
        body = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode()
        headers = {"Content-Type": "application/json"}
        if self.secret:
            headers["X-Webhook-Signature"] = self.sign(body)

        response = await self._client.post(self.url, content=body, headers=headers)
        if not response.is_success:
            raise WebhookDeliveryError(response.status_code, response.text)

    async def aclose(self) -> None:
        await self._client.aclose()


def build_webhook_client() -> WebhookClient | None:
    """Create the client from settings, or None when no WEBHOOK_URL is set."""
    if not settings.WEBHOOK_URL:
        return None
    return WebhookClient(
        url=settings.WEBHOOK_URL,
        secret=settings.WEBHOOK_SECRET,
        timeout=settings.WEBHOOK_TIMEOUT_SECONDS,
    )


class NotificationDispatcher:
    """Delivers pending outbox rows to the webhook, out-of-band."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        client: WebhookClient | None,
        max_attempts: int = 5,
        batch_size: int = 50,
        poll_interval_seconds: float = 2.0,
    ):
        self.session_factory = session_factory
        self.client = client
        self.max_attempts = max_attempts
        self.batch_size = batch_size
        self.poll_interval_seconds = poll_interval_seconds

    @staticmethod
    def backoff_delay(attempts: int) -> timedelta:
        seconds = BACKOFF_BASE_SECONDS * (2 ** max(attempts - 1, 0))
        return timedelta(seconds=min(seconds, BACKOFF_MAX_SECONDS))

    async def dispatch_pending(self) -> int:
        """
        Attempt delivery of every due PENDING row (up to batch_size).

        Each row is committed individually so a crash mid-batch never
        re-sends messages that were already delivered. The session factory
        must be built with expire_on_commit=False, as AsyncSessionLocal is.

        Returns:
            The number of rows delivered in this pass.
        """
        delivered = 0
        async with self.session_factory() as db:
            now = datetime.now(timezone.utc)
            result = await db.execute(
                select(NotificationOutbox)
                .where(NotificationOutbox.status == OutboxStatus.PENDING)
                .where(NotificationOutbox.next_attempt_at <= now)
                .order_by(NotificationOutbox.id)
                .limit(self.batch_size)
            )
            messages = list(result.scalars().all())
            if not messages:
                return 0

            if self.client is None:
                logger.warning("webhook_url_not_configured", pending=len(messages))
                return 0

            for message in messages:
                message.attempts += 1
                try:
                    await self.client.send(message.payload)
                except (httpx.HTTPError, WebhookDeliveryError) as exc:
                    self._record_failure(message, exc)
                else:
                    message.status = OutboxStatus.SENT
                    message.sent_at = datetime.now(timezone.utc)
                    message.last_error = None
                    delivered += 1
                    logger.info(
                        "webhook_delivered",
                        outbox_id=message.id,
                        event_type=message.event_type,
                        attempts=message.attempts,
                    )
                await db.commit()

        return delivered

    def _record_failure(self, message: NotificationOutbox, exc: Exception) -> None:
        message.last_error = str(exc) or exc.__class__.__name__
        if message.attempts >= self.max_attempts:
            message.status = OutboxStatus.FAILED
            logger.error(
                "webhook_delivery_abandoned",
                outbox_id=message.id,
                event_type=message.event_type,
                attempts=message.attempts,
                error=message.last_error,
            )
            return

        message.next_attempt_at = datetime.now(timezone.utc) + self.backoff_delay(
            message.attempts
        )
        logger.warning(
            "webhook_delivery_failed",
            outbox_id=message.id,
            event_type=message.event_type,
            attempts=message.attempts,
            error=message.last_error,
        )

    async def run(self) -> None:
        """Poll forever; cancelled by the application lifespan on shutdown."""
        logger.info(
            "notification_dispatcher_started",
            poll_interval=self.poll_interval_seconds,
            batch_size=self.batch_size,
        )
        while True:
            try:
                await self.dispatch_pending()
            except Exception:
                # Keep polling; a failed pass leaves its rows PENDING for the next one
                logger.exception("notification_dispatch_failed")
            await asyncio.sleep(self.poll_interval_seconds)
