"""Per-request database sessions."""

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

from libs.db.config import AsyncSessionLocal


async def get_async_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding one session per request.

    Services commit their own transactions; whatever is still open when the
    request fails is rolled back here.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
