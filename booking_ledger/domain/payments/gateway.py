"""Capabilities the payment orchestrator consumes from outside the ledger."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

INTENT_SUCCEEDED = "succeeded"
INTENT_PROCESSING = "processing"
INTENT_REQUIRES_ACTION = "requires_action"

WEBHOOK_INTENT_SUCCEEDED = "payment_intent.succeeded"
WEBHOOK_INTENT_FAILED = "payment_intent.payment_failed"

# gateway decline codes that another attempt cannot fix
NON_RETRYABLE_CODES = frozenset({"card_declined", "expired_card", "authentication_required"})


@dataclass(slots=True)
class GatewayIntent:
    id: str
    status: str
    amount_cents: int
    currency: str
    client_secret: Optional[str] = None
    payment_method: Optional[str] = None
    customer: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class GatewayRefund:
    id: str
    status: str


@dataclass(slots=True)
class GatewayEvent:
    id: str
    type: str
    intent: GatewayIntent


class PaymentGateway(Protocol):
    async def create_intent(
        self,
        amount_cents: int,
        currency: str,
        metadata: dict[str, str],
        *,
        payment_method: Optional[str] = None,
        customer: Optional[str] = None,
        confirm: bool = False,
        off_session: bool = False,
    ) -> GatewayIntent:
        ...

    async def retrieve_intent(self, intent_ref: str) -> GatewayIntent:
        ...

    async def confirm_intent(self, intent_ref: str, payment_method: Optional[str] = None) -> GatewayIntent:
        ...

    async def refund(self, intent_ref: str, amount_cents: Optional[int] = None) -> GatewayRefund:
        ...

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: str,
        secret: Optional[str] = None,
    ) -> GatewayEvent:
        ...


class BookingCollaborator(Protocol):
    async def mark_paid(self, booking_id: str) -> None:
        ...

    async def mark_payment_failed(self, booking_id: str) -> None:
        ...


class LoggingBookingCollaborator:
    """Stand-in used when the host application does not wire its booking store."""

    async def mark_paid(self, booking_id: str) -> None:
        logger.info("Booking %s marked paid", booking_id)

    async def mark_payment_failed(self, booking_id: str) -> None:
        logger.info("Booking %s marked payment failed", booking_id)
