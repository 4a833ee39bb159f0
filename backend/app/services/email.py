"""Transactional email via Resend or SendGrid.

Configuration (.env):
    EMAIL_SERVICE=resend|sendgrid|none
    RESEND_API_KEY / SENDGRID_API_KEY
    EMAIL_FROM, EMAIL_FROM_NAME

Senders never raise: provider rejections and transport errors are logged
and reported as False.  Whether that is fatal is the caller's decision.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

import httpx

from app.config import settings

logger = logging.getLogger("portal.email")

RESEND_URL = "https://api.resend.com/emails"
SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


@dataclass(frozen=True)
class InvoiceEmail:
    to: str
    client_name: str
    invoice_number: str
    total_amount: Decimal
    currency: str
    due_date: date
    portal_link: str


def _api_key() -> str:
    if settings.email_service == "resend":
        return settings.resend_api_key
    if settings.email_service == "sendgrid":
        return settings.sendgrid_api_key
    return ""


def is_email_service_enabled() -> bool:
    return settings.email_service != "none" and bool(_api_key())


def _http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.email_timeout_seconds)


async def _post(url: str, payload: dict, expected_status: int) -> bool:
    headers = {
        "Authorization": f"Bearer {_api_key()}",
        "Content-Type": "application/json",
    }
    try:
        async with _http_client() as client:
            response = await client.post(url, json=payload, headers=headers)
    except httpx.HTTPError as exc:
        logger.error("Email request to %s failed: %s", url, exc)
        return False

    if response.status_code != expected_status:
        logger.error(
            "Email provider returned %s: %s",
            response.status_code, response.text[:500],
        )
        return False
    return True


async def _send_with_resend(to: str, subject: str, html: str, text: str) -> bool:
    return await _post(
        RESEND_URL,
        {
            "from": f"{settings.email_from_name} <{settings.email_from}>",
            "to": [to],
            "subject": subject,
            "html": html,
            "text": text,
        },
        expected_status=200,
    )


async def _send_with_sendgrid(to: str, subject: str, html: str, text: str) -> bool:
    return await _post(
        SENDGRID_URL,
        {
            "personalizations": [{"to": [{"email": to}], "subject": subject}],
            "from": {"email": settings.email_from, "name": settings.email_from_name},
            "content": [
                {"type": "text/plain", "value": text},
                {"type": "text/html", "value": html},
            ],
        },
        expected_status=202,
    )


async def send_email(to: str, subject: str, html: str, text: str) -> bool:
    if not is_email_service_enabled():
        logger.warning("Email service not configured; not sending to %s", to)
        return False

    if settings.email_service == "resend":
        sent = await _send_with_resend(to, subject, html, text)
    elif settings.email_service == "sendgrid":
        sent = await _send_with_sendgrid(to, subject, html, text)
    else:
        logger.error("Unsupported email service: %s", settings.email_service)
        return False

    if sent:
        logger.info("Email sent via %s to %s", settings.email_service, to)
    return sent


def render_invoice_email(params: InvoiceEmail) -> tuple[str, str, str]:
    """Return (subject, html, text) for a new-invoice email."""
    amount = f"{params.currency} {params.total_amount:,.2f}"
    due = params.due_date.strftime("%d/%m/%Y")
    subject = f"Invoice {params.invoice_number} - {amount}"

    text = (
        f"Hello {params.client_name},\n\n"
        f"A new invoice has been issued:\n\n"
        f"Number: {params.invoice_number}\n"
        f"Amount: {amount}\n"
        f"Due date: {due}\n\n"
        f"View and pay it in the portal: {params.portal_link}\n"
    )
    html = f"""<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; background: #f5f5f5; padding: 40px 20px;">
  <div style="max-width: 600px; margin: 0 auto; background: white; border-radius: 12px; padding: 40px 30px;">
    <h1 style="font-size: 24px;">New invoice</h1>
    <p>Hello <strong>{params.client_name}</strong>,</p>
    <p>A new invoice has been issued:</p>
    <table style="width: 100%; border: 2px solid #3b82f6; border-radius: 8px; padding: 16px;">
      <tr><td>Invoice number</td><td><strong>{params.invoice_number}</strong></td></tr>
      <tr><td>Total</td><td><strong>{amount}</strong></td></tr>
      <tr><td>Due date</td><td><strong>{due}</strong></td></tr>
    </table>
    <p style="text-align: center; margin: 30px 0;">
      <a href="{params.portal_link}" style="background: #3b82f6; color: white; padding: 14px 32px; border-radius: 8px; text-decoration: none;">View invoice and pay</a>
    </p>
  </div>
</body>
</html>
"""
    return subject, html, text


async def send_invoice_email(params: InvoiceEmail) -> bool:
    subject, html, text = render_invoice_email(params)
    return await send_email(params.to, subject, html, text)
