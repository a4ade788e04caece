"""Wallet domain service.

Every balance change goes through ``WalletRepository.apply_delta`` which only
succeeds against the version that was read; a miss means another writer got
there first, so the wallet is re-read and the operation re-evaluated.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from booking_ledger.core.clock import as_utc, utcnow
from booking_ledger.core.config import Settings, WalletSettings
from booking_ledger.db.models import Wallet as WalletModel, WalletTransaction as WalletTransactionModel
from booking_ledger.domain.common.exceptions import ConcurrentUpdateError, InvalidAmountError
from booking_ledger.domain.currency import CurrencyConverter, from_cents
from booking_ledger.infrastructure.database.repositories.wallet_repository import SqlWalletRepository

from .exceptions import (
    CurrencyChangeTooSoonError,
    InsufficientFundsError,
    UnsupportedCurrencyError,
    WalletNotFoundError,
)
from .models import TransactionDirection, WalletSnapshot, WalletTransactionRecord
from .repository import WalletRepository

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WalletService:
    repository: WalletRepository
    converter: CurrencyConverter
    settings: WalletSettings = field(default_factory=WalletSettings)
    default_currency: str = "USD"
    clock: Callable[[], datetime] = utcnow

    @classmethod
    def with_session(
        cls,
        session: AsyncSession,
        converter: CurrencyConverter,
        settings: Optional[Settings] = None,
    ) -> "WalletService":
        if settings is None:
            return cls(SqlWalletRepository(session), converter)
        return cls(
            SqlWalletRepository(session),
            converter,
            settings=settings.wallet,
            default_currency=settings.default_currency,
        )

    async def ensure_wallet(self, user_id: str, currency: Optional[str] = None) -> WalletSnapshot:
        wallet = await self._get_or_create(user_id, currency)
        return self._to_snapshot(wallet)

    async def credit(
        self,
        *,
        user_id: str,
        amount_cents: int,
        currency: str,
        description: str,
        reference: Optional[str] = None,
    ) -> WalletSnapshot:
        currency = self._check_currency(currency)
        if amount_cents <= 0:
            raise InvalidAmountError(amount_cents)

        for _ in range(self.settings.max_write_attempts):
            wallet = await self._get_or_create(user_id, currency)
            converted = self.converter.convert_cents(amount_cents, currency, wallet.currency)
            if converted <= 0:
                raise InvalidAmountError(converted)
            updated = await self._apply(wallet, converted)
            if updated is None:
                continue
            await self._record(
                updated,
                direction=TransactionDirection.CREDIT,
                amount_cents=converted,
                delta_cents=converted,
                description=description,
                reference=reference,
                original_amount_cents=amount_cents,
                original_currency=currency,
            )
            logger.info(
                "Credited %s %s cents to wallet of user %s (balance %s)",
                converted,
                updated.currency,
                user_id,
                updated.balance_cents,
            )
            return self._to_snapshot(updated)

        raise ConcurrentUpdateError(f"Could not credit wallet of user {user_id}")

    async def debit(
        self,
        *,
        user_id: str,
        amount_cents: int,
        currency: str,
        description: str,
        reference: Optional[str] = None,
    ) -> WalletSnapshot:
        currency = self._check_currency(currency)
        if amount_cents <= 0:
            raise InvalidAmountError(amount_cents)

        for _ in range(self.settings.max_write_attempts):
            wallet = await self.repository.get_wallet(user_id)
            if wallet is None:
                raise WalletNotFoundError(user_id)
            converted = self.converter.convert_cents(amount_cents, currency, wallet.currency)
            if converted <= 0:
                raise InvalidAmountError(converted)
            if wallet.balance_cents < converted:
                logger.warning(
                    "Rejected debit of %s %s cents for user %s: balance %s",
                    converted,
                    wallet.currency,
                    user_id,
                    wallet.balance_cents,
                )
                raise InsufficientFundsError(
                    balance_cents=wallet.balance_cents,
                    required_cents=converted,
                    currency=wallet.currency,
                )
            updated = await self._apply(wallet, -converted)
            if updated is None:
                continue
            await self._record(
                updated,
                direction=TransactionDirection.DEBIT,
                amount_cents=converted,
                delta_cents=-converted,
                description=description,
                reference=reference,
                original_amount_cents=amount_cents,
                original_currency=currency,
            )
            logger.info(
                "Debited %s %s cents from wallet of user %s (balance %s)",
                converted,
                updated.currency,
                user_id,
                updated.balance_cents,
            )
            return self._to_snapshot(updated)

        raise ConcurrentUpdateError(f"Could not debit wallet of user {user_id}")

    async def set_currency(self, user_id: str, new_currency: str) -> WalletSnapshot:
        new_currency = self._check_currency(new_currency)

        for _ in range(self.settings.max_write_attempts):
            wallet = await self._get_or_create(user_id, new_currency)
            if wallet.currency == new_currency:
                return self._to_snapshot(wallet)

            now = self.clock()
            self._check_cooldown(wallet, now)

            old_currency = wallet.currency
            old_balance = wallet.balance_cents
            converted = self.converter.convert_cents(old_balance, old_currency, new_currency)
            updated = await self._apply(
                wallet,
                converted - old_balance,
                currency=new_currency,
                currency_changed_at=now,
            )
            if updated is None:
                continue
            await self._record(
                updated,
                direction=TransactionDirection.CONVERSION,
                amount_cents=converted,
                delta_cents=converted - old_balance,
                description=(
                    f"Currency converted: {from_cents(old_balance):.2f} {old_currency} "
                    f"-> {from_cents(converted):.2f} {new_currency}"
                ),
                reference=None,
                original_amount_cents=old_balance,
                original_currency=old_currency,
            )
            logger.info(
                "Converted wallet of user %s from %s to %s (%s -> %s cents)",
                user_id,
                old_currency,
                new_currency,
                old_balance,
                converted,
            )
            return self._to_snapshot(updated)

        raise ConcurrentUpdateError(f"Could not change currency of wallet for user {user_id}")

    async def list_transactions(self, user_id: str, limit: int = 50, offset: int = 0) -> list[WalletTransactionRecord]:
        rows = await self.repository.list_transactions(user_id, limit, offset)
        return [self._to_transaction(row) for row in rows]

    async def _get_or_create(self, user_id: str, currency: Optional[str]) -> WalletModel:
        wallet = await self.repository.get_wallet(user_id)
        if wallet is None:
            currency = self._check_currency(currency or self.default_currency)
            wallet = await self.repository.create_wallet(user_id, currency)
            logger.info("Created %s wallet for user %s", currency, user_id)
        return wallet

    async def _apply(
        self,
        wallet: WalletModel,
        delta_cents: int,
        *,
        currency: Optional[str] = None,
        currency_changed_at: Optional[datetime] = None,
    ) -> WalletModel | None:
        target_currency = currency or wallet.currency
        reference_balance = self.converter.convert_cents(
            wallet.balance_cents + delta_cents,
            target_currency,
            self.converter.reference_currency,
        )
        updated = await self.repository.apply_delta(
            wallet.user_id,
            delta_cents,
            wallet.version,
            reference_balance_cents=reference_balance,
            currency=currency,
            currency_changed_at=currency_changed_at,
        )
        if updated is None:
            logger.info("Wallet of user %s changed concurrently, retrying", wallet.user_id)
        return updated

    async def _record(
        self,
        wallet: WalletModel,
        *,
        direction: TransactionDirection,
        amount_cents: int,
        delta_cents: int,
        description: str,
        reference: Optional[str],
        original_amount_cents: int,
        original_currency: str,
    ) -> None:
        converted = original_currency != wallet.currency
        await self.repository.add_transaction(
            user_id=wallet.user_id,
            direction=direction.value,
            amount_cents=amount_cents,
            delta_cents=delta_cents,
            balance_after_cents=wallet.balance_cents,
            currency=wallet.currency,
            description=description,
            reference=reference,
            original_amount_cents=original_amount_cents if converted else None,
            original_currency=original_currency if converted else None,
        )

    def _check_currency(self, currency: str) -> str:
        currency = currency.upper()
        if not self.converter.supports(currency):
            raise UnsupportedCurrencyError(currency)
        return currency

    def _check_cooldown(self, wallet: WalletModel, now: datetime) -> None:
        changed_at = as_utc(wallet.currency_changed_at)
        cooldown = self.settings.currency_change_cooldown_seconds
        if changed_at is None or cooldown <= 0:
            return
        elapsed = (now - changed_at).total_seconds()
        if elapsed < cooldown:
            raise CurrencyChangeTooSoonError(math.ceil(cooldown - elapsed))

    @staticmethod
    def _to_snapshot(model: WalletModel) -> WalletSnapshot:
        return WalletSnapshot(
            user_id=model.user_id,
            balance_cents=model.balance_cents,
            currency=model.currency,
            reference_balance_cents=model.reference_balance_cents,
            version=model.version,
            currency_changed_at=as_utc(model.currency_changed_at),
            updated_at=as_utc(model.updated_at),
        )

    @staticmethod
    def _to_transaction(model: WalletTransactionModel) -> WalletTransactionRecord:
        return WalletTransactionRecord(
            id=model.id,
            user_id=model.user_id,
            direction=TransactionDirection(model.direction),
            amount_cents=model.amount_cents,
            delta_cents=model.delta_cents,
            balance_after_cents=model.balance_after_cents,
            currency=model.currency,
            description=model.description,
            reference=model.reference,
            original_amount_cents=model.original_amount_cents,
            original_currency=model.original_currency,
            created_at=as_utc(model.created_at),
        )
