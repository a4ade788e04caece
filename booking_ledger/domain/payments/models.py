"""Domain models for payments."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from booking_ledger.domain.cancellation import CancellationFeeResult
from booking_ledger.domain.common.exceptions import LedgerError
from booking_ledger.domain.wallets.models import WalletSnapshot


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    GATEWAY = "gateway"
    WALLET = "wallet"


class PaymentPurpose(str, Enum):
    BOOKING = "booking"
    WALLET_FUNDING = "wallet_funding"


@dataclass(slots=True)
class PaymentRecord:
    id: str
    user_id: str
    booking_id: Optional[str]
    amount_cents: int
    original_amount_cents: int
    currency: str
    status: PaymentStatus
    method: PaymentMethod
    purpose: PaymentPurpose
    gateway_ref: Optional[str]
    discount_code: Optional[str]
    failure_reason: Optional[str]
    refund_reason: Optional[str]
    refunded_amount_cents: Optional[int]
    retry_attempted: bool
    retried_from: Optional[str]
    retry_attempt: Optional[int]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


@dataclass(slots=True)
class PaymentResult:
    """Outcome of ``create_payment``.

    A wallet payment rejected for insufficient funds is still persisted as
    ``failed``; ``error`` then carries the reason.
    """

    payment: PaymentRecord
    client_secret: Optional[str] = None
    error: Optional[LedgerError] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class RefundResult:
    payment: PaymentRecord
    refunded_amount_cents: int
    gateway_refund_ref: Optional[str] = None
    wallet: Optional[WalletSnapshot] = None


@dataclass(slots=True)
class CancellationRefund:
    fee: CancellationFeeResult
    refund: Optional[RefundResult] = None
