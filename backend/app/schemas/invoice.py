"""Pydantic schemas for invoices and their line items."""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from app.schemas.common import Amount
from app.schemas.payment import PaymentOut
from app.schemas.validators import (
    validate_currency,
    validate_invoice_number,
    validate_uuid,
)


# ── Line items ───────────────────────────────────────────────


class InvoiceItemCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(Decimal("1"), gt=0, decimal_places=2)
    unit_price: Decimal = Field(..., gt=0, decimal_places=2)
    discount: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    order_index: int | None = Field(None, ge=0)

    @model_validator(mode="after")
    def discount_within_line(self) -> "InvoiceItemCreate":
        if self.discount > self.quantity * self.unit_price:
            raise ValueError("Item discount cannot exceed quantity * unit_price")
        return self


class InvoiceItemOut(BaseModel):
    id: str
    invoice_id: str
    description: str
    quantity: Amount
    unit_price: Amount
    discount: Amount
    subtotal: Amount
    order_index: int
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


# ── Invoices ─────────────────────────────────────────────────


class InvoiceCreate(BaseModel):
    client_id: str
    project_id: str | None = None
    milestone_id: str | None = None
    invoice_number: str | None = None  # generated as YYYYMM#### when omitted
    issue_date: date | None = None      # defaults to today (UTC)
    due_date: date
    tax: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    discount: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    currency: str | None = None         # defaults to settings.default_currency
    status: Literal["draft", "pending"] = "pending"
    payment_method: str | None = Field(None, max_length=50)
    notes: str | None = None
    terms: str | None = None
    items: list[InvoiceItemCreate] = []
    send_email: bool = False

    @field_validator("client_id", "project_id", "milestone_id")
    @classmethod
    def valid_ids(cls, v: str | None) -> str | None:
        return validate_uuid(v) if v is not None else v

    @field_validator("invoice_number")
    @classmethod
    def valid_number(cls, v: str | None) -> str | None:
        return validate_invoice_number(v) if v is not None else v

    @field_validator("currency")
    @classmethod
    def valid_currency(cls, v: str | None) -> str | None:
        return validate_currency(v) if v is not None else v

    @model_validator(mode="after")
    def due_after_issue(self) -> "InvoiceCreate":
        if self.issue_date is not None and self.due_date < self.issue_date:
            raise ValueError("due_date cannot be before issue_date")
        return self


class InvoiceUpdate(BaseModel):
    issue_date: date | None = None
    due_date: date | None = None
    tax: Decimal | None = Field(None, ge=0, decimal_places=2)
    discount: Decimal | None = Field(None, ge=0, decimal_places=2)
    currency: str | None = None
    # paid/partial come from reconciliation; overdue is derived on read
    status: Literal["draft", "pending", "cancelled"] | None = None
    payment_method: str | None = Field(None, max_length=50)
    notes: str | None = None
    terms: str | None = None

    @field_validator("currency")
    @classmethod
    def valid_currency(cls, v: str | None) -> str | None:
        return validate_currency(v) if v is not None else v


class InvoiceOut(BaseModel):
    id: str
    client_id: str
    project_id: str | None = None
    milestone_id: str | None = None
    invoice_number: str
    currency: str
    subtotal: Amount
    tax: Amount
    discount: Amount
    total: Amount
    status: str
    issue_date: date
    due_date: date
    paid_at: datetime | None = None
    payment_method: str | None = None
    notes: str | None = None
    terms: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    items: list[InvoiceItemOut] = []
    payments: list[PaymentOut] = []

    # Derived on read
    amount_paid: Amount = 0.0
    balance_due: Amount = 0.0
    effective_status: str = ""
    is_overdue: bool = False

    model_config = {"from_attributes": True}


class InvoiceSent(BaseModel):
    invoice_id: str
    invoice_number: str
    sent_to: str


class ReconcileSummary(BaseModel):
    checked: int
    updated: int
    invoice_ids: list[str]


class PaymentRegistered(BaseModel):
    payment: PaymentOut
    invoice: InvoiceOut
