"""Sequential invoice number generation.

Format:  YYYYMM####   e.g. 2026100007
  - YYYYMM  year-month of the UTC creation date
  - ####    zero-padded sequence, resets to 0001 every month

The next number is derived from the greatest existing number with the
month prefix.  Concurrent creators can derive the same number; the
UNIQUE constraint on invoices.invoice_number rejects the loser, which
rolls back and derives again (bounded by settings.invoice_number_max_attempts).
"""

import logging
from datetime import date
from typing import Callable

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.middleware.exceptions import (
    NumberingConflictError,
    NumberSequenceExhaustedError,
)
from app.models.invoice import Invoice
from app.utils.dates import today_utc

logger = logging.getLogger(__name__)

SEQ_WIDTH = 4
MAX_SEQ = 10 ** SEQ_WIDTH - 1


def month_prefix(on: date) -> str:
    return on.strftime("%Y%m")


def next_in_sequence(prefix: str, last_number: str | None) -> str:
    """Return the number following `last_number` within `prefix`.

    Raises NumberSequenceExhaustedError past 9999; the width never grows.
    """
    seq = int(last_number[-SEQ_WIDTH:]) + 1 if last_number else 1
    if seq > MAX_SEQ:
        raise NumberSequenceExhaustedError(prefix)
    return f"{prefix}{seq:0{SEQ_WIDTH}d}"


async def _last_invoice_number(db: AsyncSession, prefix: str) -> str | None:
    """Greatest YYYYMM#### number for the prefix, or None.

    Explicit numbers that share the prefix but not the shape are skipped.
    Database errors propagate: a failed lookup must never default to 0001.
    """
    result = await db.execute(
        select(Invoice.invoice_number)
        .where(
            Invoice.invoice_number.like(f"{prefix}%"),
            func.length(Invoice.invoice_number) == len(prefix) + SEQ_WIDTH,
        )
        .order_by(Invoice.invoice_number.desc())
    )
    for number in result.scalars():
        if number[len(prefix):].isdigit():
            return number
    return None


async def generate_invoice_number(db: AsyncSession, on: date | None = None) -> str:
    """Derive the next invoice number for the month containing `on`."""
    prefix = month_prefix(on or today_utc())
    last = await _last_invoice_number(db, prefix)
    return next_in_sequence(prefix, last)


async def insert_numbered_invoice(
    db: AsyncSession,
    build: Callable[[str], Invoice],
    *,
    invoice_number: str | None = None,
    on: date | None = None,
) -> Invoice:
    """Insert the invoice returned by `build(number)` under a unique number.

    `build` must return a fresh Invoice on every call: a collision rolls
    back the session, discarding the previous object and expiring anything
    the caller loaded earlier in the transaction.  An explicit
    `invoice_number` is tried once; a collision on it is a conflict.
    """
    max_attempts = max(1, settings.invoice_number_max_attempts)

    for attempt in range(1, max_attempts + 1):
        number = invoice_number or await generate_invoice_number(db, on)
        invoice = build(number)
        db.add(invoice)
        try:
            await db.flush()
        except IntegrityError as exc:
            await db.rollback()
            if "invoice_number" not in str(exc.orig):
                raise
            if invoice_number:
                raise NumberingConflictError(
                    f"Invoice number {invoice_number} already exists"
                )
            logger.warning(
                "Invoice number %s collided (attempt %d/%d), retrying",
                number, attempt, max_attempts,
            )
            continue
        return invoice

    raise NumberingConflictError(
        f"Could not allocate a unique invoice number after {max_attempts} attempts"
    )
