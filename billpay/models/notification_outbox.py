"""
NotificationOutbox model — webhook messages waiting for delivery.

Rows are inserted in the same database transaction as the payment that
triggers them, so a notification exists if and only if the payment
committed. The background dispatcher delivers them later; the request
path never talks to the webhook endpoint.

Status lifecycle:
  PENDING -> SENT            delivered (2xx)
  PENDING -> PENDING         failed attempt, retried at next_attempt_at
  PENDING -> FAILED          attempts exhausted
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, String, Integer, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from billpay.database import Base


class OutboxStatus:
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class NotificationOutbox(Base):
    __tablename__ = "notification_outbox"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    # e.g. "invoice.paid"
    event_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    payload: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default=OutboxStatus.PENDING,
        index=True,
    )

    attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    last_error: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    next_attempt_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    sent_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
