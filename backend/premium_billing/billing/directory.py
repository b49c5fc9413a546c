"""User directory: resolve a payer email to a user id."""

from typing import Protocol

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from premium_billing.db.models.user import User


class UserDirectory(Protocol):
    async def find_user_id(self, email: str) -> str | None:
        """Return the user id registered for ``email``, or None."""
        ...


class SqlUserDirectory:
    """UserDirectory backed by the ``users`` table (case-insensitive email match)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def find_user_id(self, email: str) -> str | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(User.id).where(func.lower(User.email) == email.strip().lower())
            )
            return result.scalar_one_or_none()
