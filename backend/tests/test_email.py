"""Invoice email tests (provider HTTP calls go through httpx.MockTransport)."""

import json
from datetime import date
from decimal import Decimal

import httpx
import pytest
from sqlalchemy import select

from app.config import settings
from app.middleware.exceptions import ConfigurationError, EmailDeliveryError
from app.models.activity_log import ActivityLog
from app.models.invoice import Invoice
from app.schemas.invoice import InvoiceCreate
from app.services import email as email_service
from app.services import invoicing
from app.services.email import InvoiceEmail, render_invoice_email, send_invoice_email

PARAMS = InvoiceEmail(
    to="billing@acme.test",
    client_name="Acme Ltda",
    invoice_number="2026100001",
    total_amount=Decimal("1240.00"),
    currency="BRL",
    due_date=date(2026, 11, 5),
    portal_link="http://localhost:5173/portal/invoices/abc",
)


@pytest.fixture
def provider(monkeypatch):
    """Capture outgoing provider requests; respond with `provider.status`."""
    state = {"requests": [], "status": 200, "error": None}

    def handler(request: httpx.Request) -> httpx.Response:
        if state["error"] is not None:
            raise state["error"]
        state["requests"].append(request)
        return httpx.Response(state["status"], json={"id": "email_123"})

    monkeypatch.setattr(
        email_service,
        "_http_client",
        lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    return state


@pytest.mark.unit
class TestRenderInvoiceEmail:

    def test_subject_and_body(self):
        subject, html, text = render_invoice_email(PARAMS)

        assert subject == "Invoice 2026100001 - BRL 1,240.00"
        assert "Due date: 05/11/2026" in text
        assert PARAMS.portal_link in text
        assert PARAMS.portal_link in html
        assert "Acme Ltda" in html


@pytest.mark.unit
@pytest.mark.asyncio
class TestSendInvoiceEmail:

    async def test_resend_success(self, email_enabled, provider):
        assert await send_invoice_email(PARAMS) is True

        request = provider["requests"][0]
        assert str(request.url) == email_service.RESEND_URL
        assert request.headers["Authorization"] == "Bearer re_test_key"
        payload = json.loads(request.content)
        assert payload["to"] == ["billing@acme.test"]

    async def test_sendgrid_expects_202(self, monkeypatch, provider):
        monkeypatch.setattr(settings, "email_service", "sendgrid")
        monkeypatch.setattr(settings, "sendgrid_api_key", "SG.test")
        provider["status"] = 202

        assert await send_invoice_email(PARAMS) is True
        assert str(provider["requests"][0].url) == email_service.SENDGRID_URL

    async def test_provider_rejection_returns_false(self, email_enabled, provider):
        provider["status"] = 422
        assert await send_invoice_email(PARAMS) is False

    async def test_transport_error_returns_false(self, email_enabled, provider):
        provider["error"] = httpx.ConnectError("connection refused")
        assert await send_invoice_email(PARAMS) is False

    async def test_disabled_sends_nothing(self, email_disabled, provider):
        assert await send_invoice_email(PARAMS) is False
        assert provider["requests"] == []


@pytest.mark.integration
@pytest.mark.asyncio
class TestSendInvoice:
    """The send operation reports email failures distinctly."""

    async def test_sends_and_logs_activity(
        self, db_session, make_invoice, email_enabled, provider
    ):
        invoice = await make_invoice("2026100001", [(1, 100, 0)])

        response = await invoicing.send_invoice(db_session, invoice.id)

        assert response.data.sent_to == "billing@acme.test"
        assert response.data.invoice_number == "2026100001"
        payload = json.loads(provider["requests"][0].content)
        assert payload["subject"] == "Invoice 2026100001 - BRL 100.00"
        entry = (await db_session.execute(
            select(ActivityLog).where(ActivityLog.action == "sent")
        )).scalar_one()
        assert entry.entity_id == invoice.id

    async def test_not_configured(self, db_session, make_invoice, email_disabled):
        invoice = await make_invoice("2026100001", [(1, 100, 0)])

        with pytest.raises(ConfigurationError) as exc_info:
            await invoicing.send_invoice(db_session, invoice.id)
        assert exc_info.value.error_code == "CONFIGURATION_ERROR"

    async def test_provider_failure_leaves_invoice_untouched(
        self, db_session, session_factory, make_invoice, email_enabled, provider
    ):
        invoice = await make_invoice("2026100001", [(1, 100, 0)])
        provider["status"] = 500

        with pytest.raises(EmailDeliveryError) as exc_info:
            await invoicing.send_invoice(db_session, invoice.id)
        assert exc_info.value.status_code == 502

        async with session_factory() as fresh:
            stored = await fresh.get(Invoice, invoice.id)
            assert stored.status == "pending"
            assert (await fresh.execute(select(ActivityLog))).scalars().all() == []

    async def test_create_with_send_email(
        self, db_session, portal_client, email_enabled, provider
    ):
        await invoicing.create_invoice(
            db_session,
            InvoiceCreate(
                client_id=portal_client.id,
                due_date=date(2026, 11, 5),
                send_email=True,
            ),
            today=date(2026, 10, 5),
        )

        payload = json.loads(provider["requests"][0].content)
        assert payload["subject"].startswith("Invoice 2026100001")

    async def test_create_survives_email_failure(
        self, db_session, portal_client, email_enabled, provider
    ):
        provider["status"] = 500

        response = await invoicing.create_invoice(
            db_session,
            InvoiceCreate(
                client_id=portal_client.id,
                due_date=date(2026, 11, 5),
                send_email=True,
            ),
            today=date(2026, 10, 5),
        )
        assert response.data.invoice_number == "2026100001"
