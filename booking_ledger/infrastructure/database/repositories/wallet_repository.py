"""SQLAlchemy implementation for wallet domain"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import desc, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_ledger.db.models import Wallet, WalletTransaction


class SqlWalletRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_wallet(self, user_id: str) -> Wallet | None:
        stmt = (
            select(Wallet)
            .where(Wallet.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def create_wallet(self, user_id: str, currency: str) -> Wallet:
        wallet = Wallet(
            user_id=user_id,
            currency=currency,
            balance_cents=0,
            reference_balance_cents=0,
            version=0,
        )
        try:
            # savepoint: a lost creation race must not undo the caller's earlier writes
            async with self.session.begin_nested():
                self.session.add(wallet)
        except IntegrityError:
            wallet = await self.get_wallet(user_id)
            if wallet is None:
                raise
        return wallet

    async def apply_delta(
        self,
        user_id: str,
        delta_cents: int,
        expected_version: int,
        *,
        reference_balance_cents: int,
        currency: str | None = None,
        currency_changed_at: datetime | None = None,
    ) -> Wallet | None:
        values: dict[str, Any] = {
            "balance_cents": Wallet.balance_cents + delta_cents,
            "version": Wallet.version + 1,
            "reference_balance_cents": reference_balance_cents,
        }
        if currency is not None:
            values["currency"] = currency
        if currency_changed_at is not None:
            values["currency_changed_at"] = currency_changed_at

        stmt = (
            update(Wallet)
            .where(
                Wallet.user_id == user_id,
                Wallet.version == expected_version,
                Wallet.balance_cents + delta_cents >= 0,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            return None
        return await self.get_wallet(user_id)

    async def add_transaction(
        self,
        *,
        user_id: str,
        direction: str,
        amount_cents: int,
        delta_cents: int,
        balance_after_cents: int,
        currency: str,
        description: str,
        reference: str | None,
        original_amount_cents: int | None,
        original_currency: str | None,
    ) -> WalletTransaction:
        tx = WalletTransaction(
            user_id=user_id,
            direction=direction,
            amount_cents=amount_cents,
            delta_cents=delta_cents,
            balance_after_cents=balance_after_cents,
            currency=currency,
            description=description,
            reference=reference,
            original_amount_cents=original_amount_cents,
            original_currency=original_currency,
        )
        self.session.add(tx)
        await self.session.flush()
        return tx

    async def list_transactions(self, user_id: str, limit: int, offset: int) -> list[WalletTransaction]:
        stmt = (
            select(WalletTransaction)
            .where(WalletTransaction.user_id == user_id)
            .order_by(desc(WalletTransaction.id))
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
