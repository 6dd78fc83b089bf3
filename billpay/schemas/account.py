"""
Pydantic schemas for Account endpoints.

Balances are stored in integer cents and exposed as two-place decimals.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, computed_field

from billpay.money import from_cents


class AccountResponse(BaseModel):
    """Public representation of a bank account."""
    id: uuid.UUID
    account_type: str
    account_number: str
    currency: str
    status: str
    created_at: datetime
    balance_cents: int = Field(exclude=True)

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def balance(self) -> Decimal:
        return from_cents(self.balance_cents)
