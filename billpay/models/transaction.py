"""
Transaction model — the append-only ledger.

Every completed bill payment writes exactly one Transaction row, in the
same database transaction as the balance decrement. Rows are never updated
after insert.

Key fields:
  - type: "PAYMENT" for bill payments
  - amount_cents: SIGNED, negative for money leaving the account
  - status: "COMPLETED" for executed payments
  - category: copied from the payee at payment time
  - reference: generated, globally unique (BP + 8 digits + 8 hex chars)
  - invoice_reference: whatever the caller passed as the payment reference
    (e.g. "INV-55"); NOT unique, resubmitting it creates a second payment
  - completed_at: when the debit took effect
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billpay.database import Base


class TransactionType:
    PAYMENT = "PAYMENT"


class TransactionStatus:
    COMPLETED = "COMPLETED"


class Transaction(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint("amount_cents != 0", name="ck_transactions_non_zero_amount"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )

    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=TransactionType.PAYMENT,
    )

    amount_cents: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    category: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    description: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    reference: Mapped[str] = mapped_column(
        String(40),
        unique=True,
        nullable=False,
    )

    invoice_reference: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        index=True,
    )

    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Indexed for history listing (newest first)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
