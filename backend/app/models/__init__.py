"""Aggregate model imports for Alembic auto-detection."""

from app.models.client import Client  # noqa: F401
from app.models.invoice import Invoice, InvoiceItem  # noqa: F401
from app.models.payment import Payment  # noqa: F401
from app.models.notification import Notification  # noqa: F401
from app.models.activity_log import ActivityLog  # noqa: F401
