"""
Account model — a bank account owned by a User.

Each account has:
  - A unique account number
  - A type: "checking" or "savings"
  - A balance in integer cents
  - A currency code (USD by default, ISO 4217)
  - A status; only ACTIVE accounts can pay bills

Balance management:
  Accounts are opened and funded by account-lifecycle processes outside this
  service. Here the balance only ever goes DOWN, and only through a guarded
  decrement:

      UPDATE accounts
         SET balance_cents = balance_cents - :amount
       WHERE id = :id AND balance_cents >= :amount

  The database evaluates the check and the write as one statement, so two
  concurrent payments cannot both pass a stale balance check. The CHECK
  constraint below is the final safety net.

Why integer cents?
  Floating-point numbers introduce rounding errors in financial
  calculations. The API speaks Decimal with two fractional digits and
  converts at the boundary (billpay.money), so all stored arithmetic is
  exact integer arithmetic.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billpay.database import Base


class Account(Base):
    __tablename__ = "accounts"

    # Database-level constraint: balance can never be negative
    __table_args__ = (
        CheckConstraint(
            "balance_cents >= 0",
            name="ck_accounts_non_negative_balance",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    # "checking" or "savings"
    account_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="checking",
    )

    account_number: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
    )

    balance_cents: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    # ISO 4217 currency code
    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="USD",
    )

    # "ACTIVE", "FROZEN" or "CLOSED"
    status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="ACTIVE",
    )

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # --- Relationships ---
    user: Mapped["User"] = relationship(
        back_populates="accounts",
    )
