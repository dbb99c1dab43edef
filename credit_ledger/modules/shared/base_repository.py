"""
Base Repository Pattern

Purpose
-------
Provides a type-safe, generic repository abstraction for SQL ledger tables
following SQLAlchemy 2.0 async patterns. Repositories encapsulate row access
and give the SQL ledger store one consistent vocabulary for reads, locks and
writes.

Design Notes
------------
This base repository provides:
- Primary-key lookup with optional pessimistic locking
- Condition-based lookups (`find_one_where`, `find_many_where`)
- Counting
- Flushing inserts so constraint violations surface at the call site
- Structured debug logging

What this class does NOT do:
- Manage transactions (the unit of work owns the session)
- Translate driver errors (the SQL store does)
- Contain business logic

Usage
-----
    class BalanceRepository(BaseRepository[CreditBalanceRow]):
        async def total_outstanding(self, session: AsyncSession) -> int:
            ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy import func, select

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Generic base repository for type-safe database operations.

    Type Parameters:
        T: The SQLAlchemy model class this repository manages
    """

    def __init__(self, model_class: Type[T], logger: Logger) -> None:
        self.model_class = model_class
        self.log = logger

    async def get(
        self,
        session: AsyncSession,
        id_value: Any,
        *,
        for_update: bool = False,
    ) -> Optional[T]:
        """
        Get a single record by primary key.

        Args:
            session: Database session
            id_value: Primary key value
            for_update: If True, use SELECT FOR UPDATE

        Returns:
            Model instance or None if not found
        """
        instance = await session.get(
            self.model_class,
            id_value,
            with_for_update=for_update or None,
            populate_existing=for_update,
        )

        self.log.debug(
            f"Repository.get: {self.model_class.__name__}",
            extra={
                "model": self.model_class.__name__,
                "id": id_value,
                "found": instance is not None,
                "locked": for_update,
            },
        )

        return instance

    async def find_one_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        for_update: bool = False,
    ) -> Optional[T]:
        stmt = select(self.model_class).where(*conditions)
        if for_update:
            stmt = stmt.with_for_update()

        result = await session.execute(stmt)
        instance = result.scalar_one_or_none()

        self.log.debug(
            f"Repository.find_one_where: {self.model_class.__name__}",
            extra={
                "model": self.model_class.__name__,
                "found": instance is not None,
                "locked": for_update,
            },
        )

        return instance

    async def find_many_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        order_by: Optional[List[Any]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[T]:
        """
        Find multiple records matching conditions.

        Args:
            session: Database session
            *conditions: SQLAlchemy filter conditions
            order_by: Optional ordering clauses
            limit: Optional maximum number of results
            offset: Optional number of leading rows to skip

        Returns:
            List of model instances
        """
        stmt = select(self.model_class).where(*conditions)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await session.execute(stmt)
        instances = list(result.scalars().all())

        self.log.debug(
            f"Repository.find_many_where: {self.model_class.__name__}",
            extra={
                "model": self.model_class.__name__,
                "found_count": len(instances),
                "limit": limit,
                "offset": offset,
            },
        )

        return instances

    async def count(
        self, session: AsyncSession, *conditions: ColumnElement[bool]
    ) -> int:
        stmt = select(func.count()).select_from(self.model_class).where(*conditions)
        result = await session.execute(stmt)
        return int(result.scalar_one())

    async def add(self, session: AsyncSession, instance: T) -> T:
        """
        Add a new record and flush, so constraint violations raise here.

        Args:
            session: Database session
            instance: Model instance to add

        Returns:
            The added instance
        """
        session.add(instance)
        await session.flush()

        self.log.debug(
            f"Repository.add: {self.model_class.__name__}",
            extra={"model": self.model_class.__name__},
        )

        return instance

    async def delete(self, session: AsyncSession, instance: T) -> None:
        await session.delete(instance)
        await session.flush()
