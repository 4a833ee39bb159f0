"""Invoice number generation tests."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import NumberingConflictError, NumberSequenceExhaustedError
from app.models.invoice import Invoice
from app.utils import numbering
from app.utils.numbering import (
    generate_invoice_number,
    insert_numbered_invoice,
    month_prefix,
    next_in_sequence,
)

OCT_5 = date(2026, 10, 5)


@pytest.mark.unit
class TestSequence:
    """Pure sequence arithmetic."""

    def test_month_prefix(self):
        assert month_prefix(OCT_5) == "202610"
        assert month_prefix(date(2027, 1, 31)) == "202701"

    def test_first_of_month(self):
        assert next_in_sequence("202610", None) == "2026100001"

    def test_increments_last(self):
        assert next_in_sequence("202610", "2026100041") == "2026100042"

    def test_exhausted_sequence_raises(self):
        with pytest.raises(NumberSequenceExhaustedError) as exc_info:
            next_in_sequence("202610", "2026109999")
        assert exc_info.value.error_code == "NUMBER_SEQUENCE_EXHAUSTED"


@pytest.mark.integration
@pytest.mark.asyncio
class TestGenerateInvoiceNumber:
    """Numbers are derived from what is already stored."""

    async def test_empty_store_starts_at_one(self, db_session: AsyncSession):
        assert await generate_invoice_number(db_session, OCT_5) == "2026100001"

    async def test_follows_greatest_number(self, db_session, make_invoice):
        await make_invoice("2026100001")
        await make_invoice("2026100007")
        await make_invoice("2026100003")

        assert await generate_invoice_number(db_session, OCT_5) == "2026100008"

    async def test_month_rollover_resets_counter(self, db_session, make_invoice):
        await make_invoice("2026090137")
        await make_invoice("2026099999")

        assert await generate_invoice_number(db_session, OCT_5) == "2026100001"
        with pytest.raises(NumberSequenceExhaustedError):
            await generate_invoice_number(db_session, date(2026, 9, 30))

    async def test_ignores_explicit_numbers_with_same_prefix(self, db_session, make_invoice):
        await make_invoice("2026100004")
        await make_invoice("202610-SPECIAL")
        await make_invoice("2026109ABC")

        assert await generate_invoice_number(db_session, OCT_5) == "2026100005"


@pytest.mark.integration
@pytest.mark.asyncio
class TestInsertNumberedInvoice:
    """Store-enforced uniqueness with bounded retry."""

    @staticmethod
    def _builder(client_id: str):
        def build(number: str) -> Invoice:
            return Invoice(
                client_id=client_id,
                invoice_number=number,
                subtotal=Decimal("0"),
                total=Decimal("0"),
                issue_date=OCT_5,
                due_date=date(2026, 11, 5),
                items=[],
                payments=[],
            )
        return build

    async def test_retries_after_collision(
        self, db_session, portal_client, make_invoice, monkeypatch
    ):
        await make_invoice("2026100001")
        real_lookup = numbering._last_invoice_number
        calls = []

        async def stale_then_real(db, prefix):
            calls.append(prefix)
            if len(calls) == 1:
                return None  # another writer inserted 0001 after we looked
            return await real_lookup(db, prefix)

        monkeypatch.setattr(numbering, "_last_invoice_number", stale_then_real)

        invoice = await insert_numbered_invoice(
            db_session, self._builder(portal_client.id), on=OCT_5
        )
        await db_session.commit()

        assert invoice.invoice_number == "2026100002"
        assert len(calls) == 2
        result = await db_session.execute(select(Invoice.invoice_number))
        assert sorted(result.scalars().all()) == ["2026100001", "2026100002"]

    async def test_gives_up_after_max_attempts(
        self, db_session, portal_client, make_invoice, monkeypatch
    ):
        await make_invoice("2026100001")

        async def always_stale(db, prefix):
            return None

        monkeypatch.setattr(numbering, "_last_invoice_number", always_stale)

        with pytest.raises(NumberingConflictError):
            await insert_numbered_invoice(
                db_session, self._builder(portal_client.id), on=OCT_5
            )

    async def test_explicit_number_collision_is_conflict(
        self, db_session, portal_client, make_invoice
    ):
        await make_invoice("INV-001")

        with pytest.raises(NumberingConflictError) as exc_info:
            await insert_numbered_invoice(
                db_session, self._builder(portal_client.id), invoice_number="INV-001"
            )
        assert exc_info.value.status_code == 409

    async def test_explicit_number_is_used_verbatim(self, db_session, portal_client):
        invoice = await insert_numbered_invoice(
            db_session, self._builder(portal_client.id), invoice_number="INV-2026-A"
        )
        assert invoice.invoice_number == "INV-2026-A"
