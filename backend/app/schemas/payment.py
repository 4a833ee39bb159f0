"""Pydantic schemas for invoice payment registration."""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from app.schemas.common import Amount
from app.schemas.validators import validate_currency


class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    currency: str | None = None  # defaults to the invoice currency
    method: Literal["manual", "pix", "boleto", "stripe", "mercadopago"] = "manual"
    status: Literal["pending", "completed", "failed"] = "completed"
    transaction_id: str | None = Field(None, max_length=255)
    gateway_payment_id: str | None = Field(None, max_length=255)
    notes: str | None = None
    paid_at: datetime | None = None

    @field_validator("currency")
    @classmethod
    def valid_currency(cls, v: str | None) -> str | None:
        return validate_currency(v) if v is not None else v


class PaymentOut(BaseModel):
    id: str
    invoice_id: str
    amount: Amount
    currency: str
    method: str
    status: str
    transaction_id: str | None = None
    gateway_payment_id: str | None = None
    notes: str | None = None
    paid_at: datetime | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
