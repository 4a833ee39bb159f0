"""Invoice operations exposed to the admin portal.

Every operation follows the same shape:

    1. validate input (pydantic, then business rules) before writing
    2. perform the financial write and commit it
    3. build the response payload from the committed state
    4. dispatch audit/notification/email side effects (best-effort)

Side effects run after the commit so their failure can never undo or
mask the financial outcome.  Payloads are built before dispatch because
a failed dispatch rolls back and expires the session's objects.
"""

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.middleware.exceptions import (
    ConfigurationError,
    EmailDeliveryError,
    InvoiceValidationError,
    ResourceNotFoundError,
)
from app.models.client import Client
from app.models.invoice import INVOICE_STATUSES, Invoice
from app.schemas.common import ApiResponse
from app.schemas.invoice import (
    InvoiceCreate,
    InvoiceItemCreate,
    InvoiceItemOut,
    InvoiceOut,
    InvoiceSent,
    InvoiceUpdate,
    PaymentRegistered,
    ReconcileSummary,
)
from app.schemas.payment import PaymentCreate, PaymentOut
from app.services import ledger, reconciliation
from app.services.email import InvoiceEmail, is_email_service_enabled, send_invoice_email
from app.services.ledger import ZERO, apply_totals, build_item, get_invoice, money
from app.services.reconciliation import (
    derive_payment_state,
    effective_status,
    reconcile_invoice,
)
from app.utils.activity import format_amount, invoice_link, log_activity, notify_client
from app.utils.dates import today_utc
from app.utils.numbering import insert_numbered_invoice

logger = logging.getLogger(__name__)

NON_NULLABLE_UPDATES = {"issue_date", "due_date", "tax", "discount", "currency", "status"}


# ── Helpers ──────────────────────────────────────────────────

def invoice_out(invoice: Invoice, today: date | None = None) -> InvoiceOut:
    """Serialize an invoice with its derived payment fields."""
    state = derive_payment_state(invoice.total, invoice.payments)
    status = effective_status(invoice, today or today_utc())
    return InvoiceOut.model_validate(invoice).model_copy(update={
        "amount_paid": float(state.amount_paid),
        "balance_due": float(state.balance_due),
        "effective_status": status,
        "is_overdue": status == "overdue",
    })


async def _get_active_client(db: AsyncSession, client_id: str) -> Client:
    result = await db.execute(select(Client).where(Client.id == client_id))
    client = result.scalar_one_or_none()
    if not client:
        raise ResourceNotFoundError("Client", client_id)
    if not client.is_active:
        raise InvoiceValidationError(f"Client {client.name} is inactive")
    return client


def _invoice_email(out: InvoiceOut, client_name: str, client_email: str) -> InvoiceEmail:
    return InvoiceEmail(
        to=client_email,
        client_name=client_name,
        invoice_number=out.invoice_number,
        total_amount=money(out.total),
        currency=out.currency,
        due_date=out.due_date,
        portal_link=f"{settings.app_url.rstrip('/')}{invoice_link(out.id)}",
    )


# ── create ───────────────────────────────────────────────────

async def create_invoice(
    db: AsyncSession,
    body: InvoiceCreate,
    *,
    today: date | None = None,
) -> ApiResponse[InvoiceOut]:
    """Create an invoice (and its initial items) under a sequential number."""
    today = today or today_utc()
    issue_date = body.issue_date or today
    if body.due_date < issue_date:
        raise InvoiceValidationError("due_date cannot be before issue_date")

    client = await _get_active_client(db, body.client_id)
    # A numbering retry rolls back and expires `client`
    client_name, client_email = client.name, client.email
    currency = body.currency or settings.default_currency

    def build(number: str) -> Invoice:
        invoice = Invoice(
            client_id=body.client_id,
            project_id=body.project_id,
            milestone_id=body.milestone_id,
            invoice_number=number,
            currency=currency,
            subtotal=ZERO,
            tax=money(body.tax),
            discount=money(body.discount),
            total=ZERO,
            status=body.status,
            issue_date=issue_date,
            due_date=body.due_date,
            payment_method=body.payment_method,
            notes=body.notes,
            terms=body.terms,
            items=[build_item(item, idx) for idx, item in enumerate(body.items)],
            payments=[],
        )
        apply_totals(invoice)
        return invoice

    invoice = await insert_numbered_invoice(
        db, build, invoice_number=body.invoice_number, on=today
    )
    await db.commit()
    out = invoice_out(invoice, today)

    await log_activity(
        db,
        action="created",
        entity_type="invoice",
        entity_id=out.id,
        summary=f"Invoice {out.invoice_number} created",
        details={
            "client_id": out.client_id,
            "total": f"{out.total:.2f}",
            "items": len(out.items),
        },
    )
    await notify_client(
        db,
        client_id=out.client_id,
        notification_type="invoice_created",
        title="New invoice",
        message=(
            f"Invoice {out.invoice_number} for "
            f"{format_amount(out.total, out.currency)} has been issued."
        ),
        link=invoice_link(out.id),
    )

    if body.send_email:
        if not is_email_service_enabled():
            logger.warning(
                "Email service not configured; invoice %s created without email",
                out.invoice_number,
            )
        elif not await send_invoice_email(_invoice_email(out, client_name, client_email)):
            logger.warning("Invoice %s created but email failed", out.invoice_number)

    return ApiResponse(data=out, message="Invoice created successfully")


# ── update ───────────────────────────────────────────────────

async def update_invoice(
    db: AsyncSession,
    invoice_id: str,
    body: InvoiceUpdate,
    *,
    today: date | None = None,
) -> ApiResponse[InvoiceOut]:
    """Update header fields; totals and status are re-derived afterwards."""
    invoice = await get_invoice(db, invoice_id, for_update=True)
    if invoice.status == "cancelled":
        raise InvoiceValidationError(
            f"Invoice {invoice.invoice_number} is cancelled and cannot be changed"
        )

    updates = body.model_dump(exclude_unset=True)
    for key in NON_NULLABLE_UPDATES & updates.keys():
        if updates[key] is None:
            raise InvoiceValidationError(f"{key} cannot be null")

    issue_date = updates.get("issue_date", invoice.issue_date)
    due_date = updates.get("due_date", invoice.due_date)
    if due_date < issue_date:
        raise InvoiceValidationError("due_date cannot be before issue_date")

    totals = ledger.compute_totals(
        invoice.items,
        updates.get("tax", invoice.tax),
        updates.get("discount", invoice.discount),
    )
    if totals.total < ZERO:
        raise InvoiceValidationError("Invoice total cannot be negative")

    for key, value in updates.items():
        if key in ("tax", "discount"):
            value = money(value)
        setattr(invoice, key, value)
    apply_totals(invoice)
    if invoice.status != "cancelled":
        reconcile_invoice(invoice)

    await db.flush()
    await db.commit()
    out = invoice_out(invoice, today)

    await log_activity(
        db,
        action="updated",
        entity_type="invoice",
        entity_id=out.id,
        summary=f"Invoice {out.invoice_number} updated",
        details=body.model_dump(mode="json", exclude_unset=True),
    )
    return ApiResponse(data=out, message="Invoice updated successfully")


# ── addItem / removeItem ─────────────────────────────────────

async def add_item(
    db: AsyncSession,
    invoice_id: str,
    body: InvoiceItemCreate,
) -> ApiResponse[InvoiceItemOut]:
    """Add a line item; invoice totals and status are recomputed in the same commit."""
    invoice = await get_invoice(db, invoice_id, for_update=True)
    item = ledger.add_item(invoice, body)
    reconcile_invoice(invoice)

    await db.flush()
    await db.commit()
    item_out = InvoiceItemOut.model_validate(item)
    number, subtotal, total = invoice.invoice_number, invoice.subtotal, invoice.total

    await log_activity(
        db,
        action="item_added",
        entity_type="invoice",
        entity_id=invoice_id,
        summary=f"Item '{item_out.description}' added to invoice {number}",
        details={
            "item_id": item_out.id,
            "item_subtotal": f"{item_out.subtotal:.2f}",
            "subtotal": str(subtotal),
            "total": str(total),
        },
    )
    return ApiResponse(data=item_out, message="Item added successfully")


async def remove_item(
    db: AsyncSession,
    invoice_id: str,
    item_id: str,
    *,
    today: date | None = None,
) -> ApiResponse[InvoiceOut]:
    """Remove a line item; invoice totals and status are recomputed in the same commit."""
    invoice = await get_invoice(db, invoice_id, for_update=True)
    item = ledger.remove_item(invoice, item_id)
    description = item.description
    reconcile_invoice(invoice)

    await db.flush()
    await db.commit()
    out = invoice_out(invoice, today)

    await log_activity(
        db,
        action="item_removed",
        entity_type="invoice",
        entity_id=invoice_id,
        summary=f"Item '{description}' removed from invoice {out.invoice_number}",
        details={
            "item_id": item_id,
            "subtotal": f"{out.subtotal:.2f}",
            "total": f"{out.total:.2f}",
            "status": out.status,
        },
    )
    return ApiResponse(data=out, message="Item removed successfully")


# ── registerPayment ──────────────────────────────────────────

async def register_payment(
    db: AsyncSession,
    invoice_id: str,
    body: PaymentCreate,
    *,
    today: date | None = None,
) -> ApiResponse[PaymentRegistered]:
    """Record a payment and re-derive the invoice status in one commit."""
    invoice = await get_invoice(db, invoice_id, for_update=True)
    previous_status = invoice.status
    payment = reconciliation.register_payment(invoice, body)

    await db.flush()
    await db.commit()
    payment_out = PaymentOut.model_validate(payment)
    out = invoice_out(invoice, today)

    await log_activity(
        db,
        action="payment_registered",
        entity_type="payment",
        entity_id=payment_out.id,
        summary=(
            f"{payment_out.status.capitalize()} payment of "
            f"{format_amount(payment_out.amount, payment_out.currency)} "
            f"on invoice {out.invoice_number}"
        ),
        details={
            "invoice_id": out.id,
            "amount": f"{payment_out.amount:.2f}",
            "method": payment_out.method,
            "payment_status": payment_out.status,
            "invoice_status": {"from": previous_status, "to": out.status},
        },
    )
    if payment_out.status == "completed":
        await notify_client(
            db,
            client_id=out.client_id,
            notification_type="payment_confirmed",
            title="Payment confirmed",
            message=(
                f"Payment of {format_amount(payment_out.amount, payment_out.currency)} "
                f"received for invoice {out.invoice_number}."
            ),
            link=invoice_link(out.id),
        )

    return ApiResponse(
        data=PaymentRegistered(payment=payment_out, invoice=out),
        message="Payment registered successfully",
    )


# ── send ─────────────────────────────────────────────────────

async def send_invoice(db: AsyncSession, invoice_id: str) -> ApiResponse[InvoiceSent]:
    """Email the invoice summary to its client.

    Email failure is an EmailDeliveryError, distinct from storage errors;
    the invoice itself is never modified.
    """
    if not is_email_service_enabled():
        raise ConfigurationError("Email service is not configured")

    invoice = await get_invoice(db, invoice_id)
    client = (
        await db.execute(select(Client).where(Client.id == invoice.client_id))
    ).scalar_one_or_none()
    if client is None:
        raise ResourceNotFoundError("Client", invoice.client_id)

    out = invoice_out(invoice)
    client_email = client.email
    if not await send_invoice_email(_invoice_email(out, client.name, client_email)):
        raise EmailDeliveryError(f"Failed to send invoice {out.invoice_number} email")

    await log_activity(
        db,
        action="sent",
        entity_type="invoice",
        entity_id=out.id,
        summary=f"Invoice {out.invoice_number} emailed to {client_email}",
        details={"to": client_email},
    )
    return ApiResponse(
        data=InvoiceSent(
            invoice_id=out.id,
            invoice_number=out.invoice_number,
            sent_to=client_email,
        ),
        message="Invoice sent by email successfully",
    )


# ── Reads ────────────────────────────────────────────────────

async def list_invoices(
    db: AsyncSession,
    client_id: str,
    status: str | None = None,
    *,
    today: date | None = None,
) -> ApiResponse[list[InvoiceOut]]:
    """Invoices of a client, newest first.  `status` filters on the effective status."""
    if status is not None and status not in INVOICE_STATUSES:
        raise InvoiceValidationError(f"Unknown invoice status: {status}")

    result = await db.execute(
        select(Invoice)
        .where(Invoice.client_id == client_id)
        .order_by(Invoice.created_at.desc())
    )
    invoices = [invoice_out(inv, today) for inv in result.scalars().all()]
    if status is not None:
        invoices = [inv for inv in invoices if inv.effective_status == status]
    return ApiResponse(data=invoices, message=f"{len(invoices)} invoice(s) found")


async def get_invoice_detail(
    db: AsyncSession,
    invoice_id: str,
    *,
    today: date | None = None,
) -> ApiResponse[InvoiceOut]:
    invoice = await get_invoice(db, invoice_id)
    return ApiResponse(data=invoice_out(invoice, today), message="Invoice found")


async def payment_history(db: AsyncSession, invoice_id: str) -> ApiResponse[list[PaymentOut]]:
    """All payments of an invoice, newest first."""
    invoice = await get_invoice(db, invoice_id)
    payments = sorted(
        invoice.payments,
        key=lambda p: (p.created_at, p.paid_at),
        reverse=True,
    )
    return ApiResponse(
        data=[PaymentOut.model_validate(p) for p in payments],
        message=f"{len(payments)} payment(s) found",
    )


# ── Backfill ─────────────────────────────────────────────────

async def reconcile_invoices(db: AsyncSession) -> ApiResponse[ReconcileSummary]:
    """Re-derive status/paid_at for every non-cancelled invoice."""
    checked, changed = await reconciliation.reconcile_all(db)
    await db.commit()

    await log_activity(
        db,
        action="reconciled",
        entity_type="invoice",
        summary=f"Re-derived payment status of {checked} invoice(s), {len(changed)} changed",
        details={"checked": checked, "updated": changed},
    )
    return ApiResponse(
        data=ReconcileSummary(checked=checked, updated=len(changed), invoice_ids=changed),
        message="Reconciliation completed",
    )
