"""SQLAlchemy implementation for payment records"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Sequence

from sqlalchemy import desc, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from booking_ledger.db.models import Payment


class SqlPaymentRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, **fields: Any) -> Payment:
        payment = Payment(**fields)
        self.session.add(payment)
        await self.session.flush()
        await self.session.refresh(payment)
        return payment

    async def get(self, payment_id: str) -> Payment | None:
        stmt = (
            select(Payment)
            .where(Payment.id == payment_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_by_gateway_ref(self, gateway_ref: str) -> Payment | None:
        stmt = (
            select(Payment)
            .where(Payment.gateway_ref == gateway_ref)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def list_for_user(self, user_id: str, limit: int, offset: int) -> Sequence[Payment]:
        stmt = (
            select(Payment)
            .where(Payment.user_id == user_id)
            .order_by(desc(Payment.created_at))
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def transition(
        self,
        payment_id: str,
        *,
        from_statuses: Iterable[str],
        to_status: str,
        **fields: Any,
    ) -> Payment | None:
        stmt = (
            update(Payment)
            .where(Payment.id == payment_id, Payment.status.in_(list(from_statuses)))
            .values(status=to_status, **fields)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            return None
        return await self.get(payment_id)

    async def transition_by_gateway_ref(
        self,
        gateway_ref: str,
        *,
        from_statuses: Iterable[str],
        to_status: str,
        **fields: Any,
    ) -> Payment | None:
        stmt = (
            update(Payment)
            .where(Payment.gateway_ref == gateway_ref, Payment.status.in_(list(from_statuses)))
            .values(status=to_status, **fields)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            return None
        return await self.get_by_gateway_ref(gateway_ref)

    async def update_fields(self, payment_id: str, **fields: Any) -> Payment | None:
        if not fields:
            return await self.get(payment_id)
        stmt = (
            update(Payment)
            .where(Payment.id == payment_id)
            .values(**fields)
            .execution_options(synchronize_session="fetch")
            .returning(Payment)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def list_retry_candidates(
        self,
        *,
        updated_since: datetime,
        claim_expired_before: datetime,
        limit: int,
    ) -> Sequence[Payment]:
        stmt = (
            select(Payment)
            .where(
                Payment.status == "failed",
                Payment.method == "gateway",
                Payment.gateway_ref.is_not(None),
                Payment.retry_attempted.is_(False),
                Payment.updated_at >= updated_since,
                or_(
                    Payment.retry_claimed_at.is_(None),
                    Payment.retry_claimed_at < claim_expired_before,
                ),
            )
            .order_by(Payment.updated_at)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def claim_for_retry(self, payment_id: str, *, now: datetime, claim_expired_before: datetime) -> bool:
        stmt = (
            update(Payment)
            .where(
                Payment.id == payment_id,
                Payment.status == "failed",
                Payment.retry_attempted.is_(False),
                or_(
                    Payment.retry_claimed_at.is_(None),
                    Payment.retry_claimed_at < claim_expired_before,
                ),
            )
            .values(retry_claimed_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1
