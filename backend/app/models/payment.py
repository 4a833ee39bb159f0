"""Payment: funds recorded against an Invoice.

Append-only.  Only `completed` payments count toward the invoice's paid
sum; pending/failed rows are kept for the history.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.utils.dates import utcnow

PAYMENT_STATUSES = ("pending", "completed", "failed")
PAYMENT_METHODS = ("manual", "pix", "boleto", "stripe", "mercadopago")


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    invoice_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("invoices.id"), nullable=False, index=True
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="BRL")
    method: Mapped[str] = mapped_column(String(30), default="manual")
    # pending | completed | failed
    status: Mapped[str] = mapped_column(String(20), default="completed", index=True)

    transaction_id: Mapped[str | None] = mapped_column(String(255))
    gateway_payment_id: Mapped[str | None] = mapped_column(String(255))
    notes: Mapped[str | None] = mapped_column(Text)

    paid_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
