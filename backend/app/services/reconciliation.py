"""Payment reconciliation: derives invoice status from payment history.

Status is a pure function of (invoice total, completed payments):

    Σ completed = 0          → pending
    0 < Σ completed < total  → partial
    Σ completed ≥ total      → paid

It is re-derived from the full payment list on every payment and every
item change, never incremented, so re-running it is always safe.

Lifecycle rules layered on top of the derivation:
    - cancelled invoices are never touched
    - a draft with nothing paid stays draft
    - overdue is not stored; see effective_status()
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import InvoiceValidationError
from app.models.invoice import Invoice
from app.models.payment import Payment
from app.schemas.payment import PaymentCreate
from app.services.ledger import ZERO, money
from app.utils.dates import to_naive_utc, utcnow

OVERDUE_ELIGIBLE = ("pending", "partial")


@dataclass(frozen=True)
class PaymentState:
    status: str
    amount_paid: Decimal
    balance_due: Decimal
    paid_at: datetime | None


def derive_status(total: Decimal, amount_paid: Decimal) -> str:
    if amount_paid <= ZERO:
        return "pending"
    if amount_paid >= total:
        return "paid"
    return "partial"


def derive_payment_state(total, payments: Iterable) -> PaymentState:
    """Pure derivation over any objects with status/amount/paid_at/created_at.

    paid_at is the paid_at of the completed payment whose running sum
    (ordered by paid_at, then created_at) first covered the total, so it
    does not move when later payments arrive.
    """
    total = money(total)
    completed = sorted(
        (p for p in payments if p.status == "completed"),
        key=lambda p: (p.paid_at, p.created_at or p.paid_at),
    )

    amount_paid = ZERO
    settled_at = None
    for payment in completed:
        amount_paid += money(payment.amount)
        if settled_at is None and amount_paid > ZERO and amount_paid >= total:
            settled_at = payment.paid_at

    status = derive_status(total, amount_paid)
    return PaymentState(
        status=status,
        amount_paid=amount_paid,
        balance_due=max(total - amount_paid, ZERO),
        paid_at=settled_at if status == "paid" else None,
    )


def reconcile_invoice(invoice: Invoice) -> bool:
    """Apply the derived state to `invoice`.  Returns True if anything changed."""
    if invoice.status == "cancelled":
        return False

    state = derive_payment_state(invoice.total, invoice.payments)
    if invoice.status == "draft" and state.amount_paid <= ZERO:
        return False

    changed = (invoice.status, invoice.paid_at) != (state.status, state.paid_at)
    invoice.status = state.status
    invoice.paid_at = state.paid_at
    return changed


def effective_status(invoice: Invoice, today: date) -> str:
    """Stored status, or `overdue` for unpaid invoices past their due date."""
    if invoice.status in OVERDUE_ELIGIBLE and invoice.due_date < today:
        return "overdue"
    return invoice.status


def register_payment(invoice: Invoice, data: PaymentCreate) -> Payment:
    """Append a payment and, when completed, re-derive the invoice status.

    The caller flushes/commits; payment row and status change share the
    same transaction.
    """
    if invoice.status == "cancelled":
        raise InvoiceValidationError(
            f"Cannot register a payment on cancelled invoice {invoice.invoice_number}"
        )
    amount = money(data.amount)
    if amount <= ZERO:
        raise InvoiceValidationError("Payment amount must be at least 0.01")

    payment = Payment(
        invoice_id=invoice.id,
        amount=amount,
        currency=data.currency or invoice.currency,
        method=data.method,
        status=data.status,
        transaction_id=data.transaction_id,
        gateway_payment_id=data.gateway_payment_id,
        notes=data.notes,
        paid_at=to_naive_utc(data.paid_at) or utcnow(),
    )
    invoice.payments.append(payment)

    if payment.status == "completed":
        reconcile_invoice(invoice)
    return payment


async def reconcile_all(db: AsyncSession) -> tuple[int, list[str]]:
    """Re-derive every non-cancelled invoice (backfill entry point).

    Returns (invoices checked, ids whose status or paid_at changed).
    """
    result = await db.execute(
        select(Invoice)
        .where(Invoice.status != "cancelled")
        .order_by(Invoice.created_at)
    )
    invoices = result.scalars().all()
    changed = [inv.id for inv in invoices if reconcile_invoice(inv)]
    await db.flush()
    return len(invoices), changed
