"""Domain models for wallet operations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class TransactionDirection(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"
    CONVERSION = "conversion"


@dataclass(slots=True)
class WalletSnapshot:
    user_id: str
    balance_cents: int
    currency: str
    reference_balance_cents: int
    version: int
    currency_changed_at: Optional[datetime]
    updated_at: Optional[datetime]


@dataclass(slots=True)
class WalletTransactionRecord:
    id: int
    user_id: str
    direction: TransactionDirection
    amount_cents: int
    delta_cents: int
    balance_after_cents: int
    currency: str
    description: str
    reference: Optional[str]
    original_amount_cents: Optional[int]
    original_currency: Optional[str]
    created_at: datetime

    @property
    def signed_amount_cents(self) -> int:
        return self.delta_cents
