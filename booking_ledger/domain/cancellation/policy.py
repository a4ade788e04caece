"""Time-tiered cancellation fees.

Venues refund by hours until the booking starts, equipment rentals and
tutorials by days. Each tier includes its lower bound, so a cancellation
exactly 24 hours ahead of a venue booking still gets the full refund.
Unknown item types get an all-or-nothing 24 hour policy.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence

from booking_ledger.core.clock import as_utc

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400


@dataclass(frozen=True, slots=True)
class RefundTier:
    min_seconds_ahead: int
    refund_percentage: int
    reason: str


@dataclass(frozen=True, slots=True)
class CancellationFeeResult:
    can_cancel: bool
    refund_percentage: int
    refund_amount_cents: int
    cancellation_fee_cents: int
    reason: str


VENUE_TIERS: Sequence[RefundTier] = (
    RefundTier(24 * SECONDS_PER_HOUR, 100, "Cancelled more than 24 hours in advance - Full refund"),
    RefundTier(12 * SECONDS_PER_HOUR, 80, "Cancelled between 12-24 hours in advance - 80% refund"),
    RefundTier(6 * SECONDS_PER_HOUR, 50, "Cancelled between 6-12 hours in advance - 50% refund"),
    RefundTier(0, 0, "Cancelled less than 6 hours in advance - No refund"),
)

RENTAL_TIERS: Sequence[RefundTier] = (
    RefundTier(2 * SECONDS_PER_DAY, 100, "Cancelled more than 2 days in advance - Full refund"),
    RefundTier(1 * SECONDS_PER_DAY, 70, "Cancelled between 1-2 days in advance - 70% refund"),
    RefundTier(0, 0, "Cancelled less than 1 day in advance - No refund"),
)

DEFAULT_TIERS: Sequence[RefundTier] = (
    RefundTier(24 * SECONDS_PER_HOUR, 100, "Cancelled more than 24 hours in advance - Full refund"),
    RefundTier(0, 0, "Cancelled less than 24 hours in advance - No refund"),
)

POLICIES: dict[str, Sequence[RefundTier]] = {
    "venue": VENUE_TIERS,
    "equipment": RENTAL_TIERS,
    "tutorial": RENTAL_TIERS,
}


def refund_share(total_amount_cents: int, refund_percentage: int) -> int:
    share = Decimal(total_amount_cents) * refund_percentage / 100
    return int(share.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def calculate_fee(
    item_type: str,
    booking_date: datetime,
    now: datetime,
    total_amount_cents: int,
) -> CancellationFeeResult:
    seconds_ahead = (as_utc(booking_date) - as_utc(now)).total_seconds()

    if seconds_ahead < 0:
        return CancellationFeeResult(
            can_cancel=False,
            refund_percentage=0,
            refund_amount_cents=0,
            cancellation_fee_cents=total_amount_cents,
            reason="Booking date has passed, cancellation not allowed",
        )

    tiers = POLICIES.get(item_type.lower())
    if tiers is None:
        logger.warning("Unknown item type %r for cancellation policy, using default", item_type)
        tiers = DEFAULT_TIERS

    tier = next(t for t in tiers if seconds_ahead >= t.min_seconds_ahead)
    refund = refund_share(total_amount_cents, tier.refund_percentage)
    return CancellationFeeResult(
        can_cancel=True,
        refund_percentage=tier.refund_percentage,
        refund_amount_cents=refund,
        cancellation_fee_cents=total_amount_cents - refund,
        reason=tier.reason,
    )
