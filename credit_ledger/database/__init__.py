"""Persistence schema for the credit ledger."""

from sqlalchemy.ext.asyncio import AsyncEngine

from credit_ledger.core.database.base import Base
from credit_ledger.database import models  # noqa: F401  (registers tables)


async def create_schema(engine: AsyncEngine) -> None:
    """Create every ledger table that does not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


__all__ = ["create_schema", "drop_schema"]
