"""
PaymentVerification model — a large payment waiting for manual review.

Created by the verified-payment path when a user submits a supporting
document. No money moves when the record is created. A reviewer then
either approves it (the account is debited and a ledger Transaction is
linked through transaction_id) or rejects it.

Status lifecycle:

    PENDING ──approve──> APPROVED   (ledger row written, transaction_id set)
       │     └─────────> FAILED     (balance too low at settlement time)
       └────reject─────> REJECTED

Only PENDING records can be reviewed; the other states are terminal.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billpay.database import Base


class VerificationStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    FAILED = "FAILED"


class PaymentVerification(Base):
    __tablename__ = "payment_verifications"

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_payment_verifications_positive_amount"),
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

    payee_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("payees.id"),
        nullable=False,
    )

    # The account to debit once approved
    account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
    )

    amount_cents: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
    )

    document_path: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default=VerificationStatus.PENDING,
        index=True,
    )

    review_note: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    reviewed_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )

    reviewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Set when an approval settles into a ledger entry
    transaction_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("transactions.id"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
