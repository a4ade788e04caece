"""SQLAlchemy implementation for discount codes"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import desc, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from booking_ledger.db.models import Discount


class SqlDiscountRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_code(self, code: str) -> Discount | None:
        stmt = (
            select(Discount)
            .where(Discount.code == code)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_by_id(self, discount_id: str) -> Discount | None:
        stmt = (
            select(Discount)
            .where(Discount.id == discount_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def create(self, **fields: Any) -> Discount:
        discount = Discount(**fields)
        self.session.add(discount)
        await self.session.flush()
        await self.session.refresh(discount)
        return discount

    async def update(self, discount_id: str, **fields: Any) -> Discount | None:
        if not fields:
            return await self.get_by_id(discount_id)
        stmt = (
            update(Discount)
            .where(Discount.id == discount_id)
            .values(**fields)
            .execution_options(synchronize_session="fetch")
            .returning(Discount)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def list_discounts(self, include_inactive: bool) -> Sequence[Discount]:
        stmt = select(Discount)
        if not include_inactive:
            stmt = stmt.where(Discount.is_active.is_(True))
        stmt = stmt.order_by(desc(Discount.created_at))
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def increment_usage(self, discount_id: str, now: datetime) -> bool:
        stmt = (
            update(Discount)
            .where(
                Discount.id == discount_id,
                Discount.is_active.is_(True),
                Discount.expires_at > now,
                Discount.current_uses < Discount.max_uses,
            )
            .values(current_uses=Discount.current_uses + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1
