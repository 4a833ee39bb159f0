"""Side-effect dispatch tests: audit/notification failures never fail the write."""

import logging
from datetime import date

import pytest
from sqlalchemy import func, select, text

from app.models.activity_log import ActivityLog
from app.models.invoice import Invoice
from app.models.notification import Notification
from app.schemas.invoice import InvoiceCreate, InvoiceItemCreate
from app.services import invoicing
from app.utils.activity import format_amount, invoice_link, log_activity, notify_client

OCT_5 = date(2026, 10, 5)


@pytest.mark.unit
class TestFormatting:

    def test_invoice_link(self):
        assert invoice_link("abc") == "/portal/invoices/abc"

    def test_format_amount(self):
        assert format_amount(1234.5, "BRL") == "BRL 1,234.50"


@pytest.mark.integration
@pytest.mark.asyncio
class TestDispatch:
    """log_activity / notify_client commit their own rows, best-effort."""

    async def test_log_activity_persists_entry(self, db_session):
        ok = await log_activity(
            db_session,
            action="created",
            entity_type="invoice",
            entity_id="inv-1",
            summary="Invoice 2026100001 created",
            details={"total": "240.00"},
        )

        assert ok is True
        entry = (await db_session.execute(select(ActivityLog))).scalar_one()
        assert entry.details == {"total": "240.00"}

    async def test_failed_write_is_logged_and_swallowed(self, db_session, caplog):
        caplog.set_level(logging.WARNING, logger="portal.dispatch")

        ok = await log_activity(
            db_session,
            action="created",
            entity_type="invoice",
            details={"unserializable": object()},
        )

        assert ok is False
        assert await db_session.scalar(select(func.count(ActivityLog.id))) == 0
        failures = [r for r in caplog.records if r.name == "portal.dispatch"]
        assert failures
        assert failures[0].error_code == "SIDE_EFFECT_FAILED"

    async def test_notification_for_unknown_table_fails_softly(
        self, db_session, test_engine, portal_client
    ):
        async with test_engine.begin() as conn:
            await conn.execute(text("DROP TABLE notifications"))

        ok = await notify_client(
            db_session,
            client_id=portal_client.id,
            notification_type="invoice_created",
            title="New invoice",
            message="...",
        )
        assert ok is False


@pytest.mark.integration
@pytest.mark.asyncio
class TestCreateWithFailingSideEffects:
    """The financial write stands even when every side effect fails."""

    async def test_invoice_survives_notification_failure(
        self, db_session, session_factory, test_engine, portal_client, caplog
    ):
        caplog.set_level(logging.WARNING, logger="portal.dispatch")
        async with test_engine.begin() as conn:
            await conn.execute(text("DROP TABLE notifications"))

        response = await invoicing.create_invoice(
            db_session,
            InvoiceCreate(
                client_id=portal_client.id,
                due_date=date(2026, 11, 5),
                items=[InvoiceItemCreate(description="Design", quantity=2, unit_price=100)],
            ),
            today=OCT_5,
        )

        assert response.data.invoice_number == "2026100001"
        assert response.data.total == 200
        async with session_factory() as fresh:
            stored = await fresh.get(Invoice, response.data.id)
            assert stored is not None
            assert stored.total == 200
            actions = (await fresh.execute(select(ActivityLog.action))).scalars().all()
            assert actions == ["created"]
        assert any(r.name == "portal.dispatch" for r in caplog.records)

    async def test_create_records_activity_and_notification(self, db_session, portal_client):
        response = await invoicing.create_invoice(
            db_session,
            InvoiceCreate(client_id=portal_client.id, due_date=date(2026, 11, 5)),
            today=OCT_5,
        )

        entry = (await db_session.execute(select(ActivityLog))).scalar_one()
        assert entry.action == "created"
        assert entry.entity_id == response.data.id
        notification = (await db_session.execute(select(Notification))).scalar_one()
        assert notification.type == "invoice_created"
        assert response.data.invoice_number in notification.message
