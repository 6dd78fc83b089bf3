"""
Pydantic schemas for the admin review endpoints.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, computed_field

from billpay.money import from_cents


class VerificationResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    payee_id: uuid.UUID
    account_id: uuid.UUID
    currency: str
    document_path: str
    status: str
    review_note: str | None
    reviewed_by: uuid.UUID | None
    reviewed_at: datetime | None
    transaction_id: uuid.UUID | None
    created_at: datetime
    amount_cents: int = Field(exclude=True)

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def amount(self) -> Decimal:
        return from_cents(self.amount_cents)


class ReviewRequest(BaseModel):
    """Optional reviewer note for approve/reject."""
    note: str | None = Field(None, max_length=500)


class ThresholdUpdateRequest(BaseModel):
    threshold: Decimal = Field(max_digits=15, decimal_places=2)


VerificationStatusFilter = Literal["PENDING", "APPROVED", "REJECTED", "FAILED"]
