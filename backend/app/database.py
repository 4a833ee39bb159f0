"""Database engine, session factory, and declarative base.

One DeclarativeBase (`Base`) holds every billing table.  The FastAPI
dependency `get_db()` yields a session that commits on success and
rolls back on error.  Services that need a hard transaction boundary
(financial write first, side effects after) commit explicitly; the
final commit in `get_db()` is then a no-op.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=20,
    max_overflow=10,
    pool_timeout=30,
)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    """Billing models (clients, invoices, items, payments, notifications, audit)."""
    pass


async def get_db() -> AsyncSession:
    """Yield a request-scoped session."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
