"""
Payee model — a biller a user has saved for bill payments.

The category is copied onto every ledger Transaction paid to this payee
so spending can be grouped without joining back here (there is deliberately
no foreign key from Transaction to Payee). Payees are never edited or
deleted by this service once created.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billpay.database import Base


class Payee(Base):
    __tablename__ = "payees"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    # The biller's account number with their own bank
    account_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    # e.g. "UTILITIES", "TELECOM", "INSURANCE"
    category: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    user: Mapped["User"] = relationship(
        back_populates="payees",
    )
