"""Repository protocol for wallet operations."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence

from booking_ledger.db.models import Wallet as WalletModel, WalletTransaction as WalletTransactionModel


class WalletRepository(Protocol):
    async def get_wallet(self, user_id: str) -> WalletModel | None:
        ...

    async def create_wallet(self, user_id: str, currency: str) -> WalletModel:
        ...

    async def apply_delta(
        self,
        user_id: str,
        delta_cents: int,
        expected_version: int,
        *,
        reference_balance_cents: int,
        currency: str | None = None,
        currency_changed_at: datetime | None = None,
    ) -> WalletModel | None:
        """Apply ``delta_cents`` if the stored version still matches.

        Returns ``None`` when the version moved on or the result would be
        negative; the caller re-reads and decides.
        """
        ...

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
    ) -> WalletTransactionModel:
        ...

    async def list_transactions(self, user_id: str, limit: int, offset: int) -> Sequence[WalletTransactionModel]:
        ...
