"""Pytest configuration and fixtures for the billing tests.

Every test gets its own SQLite database file (aiosqlite) with the full
schema created from the ORM metadata, so tests never share state.
"""

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import settings
from app.database import Base, get_db
from app.main import app
from app.models import Client, Invoice, InvoiceItem


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Create a throwaway SQLite database with the billing schema."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for service-level tests."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with a request-scoped test session."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Test Data Fixtures ───────────────────────────────────────────

@pytest_asyncio.fixture
async def portal_client(session_factory) -> Client:
    """A committed, active billing client."""
    async with session_factory() as session:
        record = Client(name="Acme Ltda", email="billing@acme.test", company_name="Acme")
        session.add(record)
        await session.commit()
    return record


@pytest_asyncio.fixture
async def make_invoice(session_factory, portal_client):
    """Factory inserting a committed invoice with the given items (qty, price, discount)."""

    async def _make(
        number: str,
        items: list[tuple] = (),
        *,
        status: str = "pending",
        due_date: date = date(2026, 11, 30),
        tax: Decimal = Decimal("0"),
        discount: Decimal = Decimal("0"),
    ) -> Invoice:
        line_items = [
            InvoiceItem(
                description=f"Item {idx + 1}",
                quantity=Decimal(str(qty)),
                unit_price=Decimal(str(price)),
                discount=Decimal(str(disc)),
                subtotal=Decimal(str(qty)) * Decimal(str(price)),
                order_index=idx,
            )
            for idx, (qty, price, disc) in enumerate(items)
        ]
        subtotal = sum((i.subtotal - i.discount for i in line_items), Decimal("0"))
        invoice = Invoice(
            client_id=portal_client.id,
            invoice_number=number,
            currency="BRL",
            subtotal=subtotal,
            tax=tax,
            discount=discount,
            total=subtotal + tax - discount,
            status=status,
            issue_date=date(2026, 10, 1),
            due_date=due_date,
            items=line_items,
            payments=[],
        )
        async with session_factory() as session:
            session.add(invoice)
            await session.commit()
        return invoice

    return _make


@pytest.fixture
def email_enabled(monkeypatch):
    """Configure Resend as the email provider."""
    monkeypatch.setattr(settings, "email_service", "resend")
    monkeypatch.setattr(settings, "resend_api_key", "re_test_key")


@pytest.fixture
def email_disabled(monkeypatch):
    monkeypatch.setattr(settings, "email_service", "none")


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP API tests")
    config.addinivalue_line("markers", "integration: Service tests against a database")
