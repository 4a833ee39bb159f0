"""Invoice line-item ledger.

Keeps an invoice's subtotal/total consistent with its items:

    item.subtotal    = quantity * unit_price
    invoice.subtotal = Σ(item.subtotal - item.discount)
    invoice.total    = invoice.subtotal + invoice.tax - invoice.discount

Totals are always recomputed from the complete item set; nothing is
incremented.  A change that would make the total negative is rejected
before the session is touched.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import InvoiceValidationError, ResourceNotFoundError
from app.models.invoice import Invoice, InvoiceItem
from app.schemas.invoice import InvoiceItemCreate

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    total: Decimal


def money(value) -> Decimal:
    """Quantize to cents.  None counts as zero."""
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def line_subtotal(quantity, unit_price) -> Decimal:
    return money(Decimal(str(quantity)) * Decimal(str(unit_price)))


def compute_totals(items: Iterable, tax, discount) -> InvoiceTotals:
    """Pure totals computation over any objects with `subtotal`/`discount`."""
    subtotal = sum((money(i.subtotal) - money(i.discount) for i in items), ZERO)
    total = subtotal + money(tax) - money(discount)
    return InvoiceTotals(subtotal=money(subtotal), total=money(total))


def _checked_totals(invoice: Invoice, items: Iterable) -> InvoiceTotals:
    totals = compute_totals(items, invoice.tax, invoice.discount)
    if totals.total < ZERO:
        raise InvoiceValidationError(
            f"Invoice total cannot be negative (subtotal {totals.subtotal}, "
            f"tax {money(invoice.tax)}, discount {money(invoice.discount)})"
        )
    return totals


def apply_totals(invoice: Invoice) -> InvoiceTotals:
    """Recompute and set subtotal/total from the invoice's current items."""
    totals = _checked_totals(invoice, invoice.items)
    invoice.subtotal = totals.subtotal
    invoice.total = totals.total
    return totals


def build_item(data: InvoiceItemCreate, order_index: int) -> InvoiceItem:
    """Build an item from cent-rounded values; subtotal matches the stored columns."""
    quantity = money(data.quantity)
    unit_price = money(data.unit_price)
    discount = money(data.discount)
    if quantity <= ZERO or unit_price <= ZERO:
        raise InvoiceValidationError("Item quantity and unit_price must be at least 0.01")

    subtotal = line_subtotal(quantity, unit_price)
    if discount > subtotal:
        raise InvoiceValidationError("Item discount cannot exceed quantity * unit_price")

    return InvoiceItem(
        description=data.description,
        quantity=quantity,
        unit_price=unit_price,
        discount=discount,
        subtotal=subtotal,
        order_index=data.order_index if data.order_index is not None else order_index,
    )


def _next_order_index(invoice: Invoice) -> int:
    return max((i.order_index or 0 for i in invoice.items), default=-1) + 1


async def get_invoice(
    db: AsyncSession, invoice_id: str, *, for_update: bool = False
) -> Invoice:
    """Load an invoice with its items and payments.

    `for_update` takes a row lock so concurrent mutations of the same
    invoice serialize at the store and each sees the other's rows.
    """
    stmt = select(Invoice).where(Invoice.id == invoice_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    invoice = (await db.execute(stmt)).scalar_one_or_none()
    if not invoice:
        raise ResourceNotFoundError("Invoice", invoice_id)
    return invoice


def add_item(invoice: Invoice, data: InvoiceItemCreate) -> InvoiceItem:
    """Append a line item and recompute totals."""
    if invoice.status == "cancelled":
        raise InvoiceValidationError(
            f"Cannot add items to cancelled invoice {invoice.invoice_number}"
        )
    item = build_item(data, _next_order_index(invoice))
    _checked_totals(invoice, [*invoice.items, item])

    invoice.items.append(item)
    apply_totals(invoice)
    return item


def remove_item(invoice: Invoice, item_id: str) -> InvoiceItem:
    """Remove a line item (deleted on flush) and recompute totals."""
    if invoice.status == "cancelled":
        raise InvoiceValidationError(
            f"Cannot remove items from cancelled invoice {invoice.invoice_number}"
        )
    item = next((i for i in invoice.items if i.id == item_id), None)
    if item is None:
        raise ResourceNotFoundError("Invoice item", item_id)
    _checked_totals(invoice, [i for i in invoice.items if i.id != item_id])

    invoice.items.remove(item)
    apply_totals(invoice)
    return item
