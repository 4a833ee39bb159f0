"""Invoice router: admin-side invoice lifecycle.

Endpoints:
    GET    /api/invoices/?client_id=&status=      List a client's invoices
    POST   /api/invoices/                         Create invoice (+ items)
    POST   /api/invoices/reconcile                Re-derive all invoice statuses
    GET    /api/invoices/{id}                     Invoice detail
    PATCH  /api/invoices/{id}                     Update header fields / cancel
    POST   /api/invoices/{id}/items               Add line item
    DELETE /api/invoices/{id}/items/{item_id}     Remove line item
    POST   /api/invoices/{id}/payments            Register payment
    GET    /api/invoices/{id}/payments            Payment history
    POST   /api/invoices/{id}/send                Email invoice to client
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
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
from app.services import invoicing

router = APIRouter()


@router.get("/", response_model=ApiResponse[list[InvoiceOut]])
async def list_invoices(
    client_id: str = Query(...),
    status_filter: str | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
):
    """List a client's invoices, optionally filtered by (effective) status."""
    return await invoicing.list_invoices(db, client_id, status_filter)


@router.post(
    "/",
    response_model=ApiResponse[InvoiceOut],
    status_code=status.HTTP_201_CREATED,
)
async def create_invoice(body: InvoiceCreate, db: AsyncSession = Depends(get_db)):
    return await invoicing.create_invoice(db, body)


# Declared before /{invoice_id} routes so "reconcile" is not taken as an id
@router.post("/reconcile", response_model=ApiResponse[ReconcileSummary])
async def reconcile_invoices(db: AsyncSession = Depends(get_db)):
    """Backfill: re-derive status and paid_at from each invoice's payments."""
    return await invoicing.reconcile_invoices(db)


@router.get("/{invoice_id}", response_model=ApiResponse[InvoiceOut])
async def get_invoice(invoice_id: str, db: AsyncSession = Depends(get_db)):
    return await invoicing.get_invoice_detail(db, invoice_id)


@router.patch("/{invoice_id}", response_model=ApiResponse[InvoiceOut])
async def update_invoice(
    invoice_id: str,
    body: InvoiceUpdate,
    db: AsyncSession = Depends(get_db),
):
    return await invoicing.update_invoice(db, invoice_id, body)


@router.post(
    "/{invoice_id}/items",
    response_model=ApiResponse[InvoiceItemOut],
    status_code=status.HTTP_201_CREATED,
)
async def add_item(
    invoice_id: str,
    body: InvoiceItemCreate,
    db: AsyncSession = Depends(get_db),
):
    return await invoicing.add_item(db, invoice_id, body)


@router.delete("/{invoice_id}/items/{item_id}", response_model=ApiResponse[InvoiceOut])
async def remove_item(
    invoice_id: str,
    item_id: str,
    db: AsyncSession = Depends(get_db),
):
    return await invoicing.remove_item(db, invoice_id, item_id)


@router.post(
    "/{invoice_id}/payments",
    response_model=ApiResponse[PaymentRegistered],
    status_code=status.HTTP_201_CREATED,
)
async def register_payment(
    invoice_id: str,
    body: PaymentCreate,
    db: AsyncSession = Depends(get_db),
):
    return await invoicing.register_payment(db, invoice_id, body)


@router.get("/{invoice_id}/payments", response_model=ApiResponse[list[PaymentOut]])
async def payment_history(invoice_id: str, db: AsyncSession = Depends(get_db)):
    return await invoicing.payment_history(db, invoice_id)


@router.post("/{invoice_id}/send", response_model=ApiResponse[InvoiceSent])
async def send_invoice(invoice_id: str, db: AsyncSession = Depends(get_db)):
    """Email the invoice to its client.  502 when the provider rejects it."""
    return await invoicing.send_invoice(db, invoice_id)
