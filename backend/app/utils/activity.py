"""Best-effort audit and client-notification dispatch.

Usage (after the financial write has been committed):

    await log_activity(
        db, action="created", entity_type="invoice",
        entity_id=invoice.id, summary="Invoice 2026100001 created",
        details={"client_id": invoice.client_id},
    )
    await notify_client(
        db, client_id=invoice.client_id, notification_type="invoice_created",
        title="New invoice", message="...", link=invoice_link(invoice.id),
    )

Each call commits its own row.  A failure rolls back only that row, is
logged as SIDE_EFFECT_FAILED and reported as False; it is never raised.
Callers must not rely on ORM objects loaded earlier in the session being
unexpired after a dispatch.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import SideEffectFailure
from app.models.activity_log import ActivityLog
from app.models.notification import Notification

logger = logging.getLogger("portal.dispatch")


def invoice_link(invoice_id: str) -> str:
    return f"/portal/invoices/{invoice_id}"


def format_amount(amount, currency: str) -> str:
    return f"{currency} {Decimal(str(amount)):,.2f}"


async def _dispatch(db: AsyncSession, row, label: str, context: dict) -> bool:
    try:
        db.add(row)
        await db.commit()
    except Exception as exc:
        await db.rollback()
        failure = SideEffectFailure(f"Failed to record {label}: {exc}")
        logger.warning(
            failure.message,
            extra={"error_code": failure.error_code, **context},
            exc_info=True,
        )
        return False
    return True


async def log_activity(
    db: AsyncSession,
    *,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    summary: str | None = None,
    details: dict | None = None,
) -> bool:
    """Append an activity log entry in its own transaction."""
    entry = ActivityLog(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        summary=summary,
        details=details,
    )
    return await _dispatch(
        db, entry, "activity log",
        {"action": action, "entity_type": entity_type, "entity_id": entity_id},
    )


async def notify_client(
    db: AsyncSession,
    *,
    client_id: str,
    notification_type: str,
    title: str,
    message: str,
    link: str | None = None,
) -> bool:
    """Create a portal notification for the client in its own transaction."""
    notification = Notification(
        client_id=client_id,
        type=notification_type,
        title=title,
        message=message,
        link=link,
    )
    return await _dispatch(
        db, notification, "client notification",
        {"notification_type": notification_type, "client_id": client_id},
    )
