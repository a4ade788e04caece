"""
Pytest configuration and fixtures.
"""
import itertools
import json
from pathlib import Path
from typing import Any, AsyncGenerator, Optional, Union

import pytest
import pytest_asyncio

from booking_ledger.core.config import (
    DatabaseSettings,
    RetrySettings,
    Settings,
    WalletSettings,
)
from booking_ledger.core.container import ApplicationContainer
from booking_ledger.domain.payments import (
    GatewayError,
    GatewayEvent,
    GatewayIntent,
    GatewayRefund,
    WebhookSignatureError,
)
from booking_ledger.infrastructure.database import init_db

VALID_SIGNATURE = "t=1,v1=valid"


class FakeGateway:
    """In-memory stand-in for the card gateway.

    ``outcomes`` queues what the next confirmed ``create_intent`` calls
    return: an intent status string or an exception to raise.
    """

    def __init__(self) -> None:
        self.intents: dict[str, GatewayIntent] = {}
        self.created: list[dict[str, Any]] = []
        self.refunds: list[tuple[str, Optional[int]]] = []
        self.outcomes: list[Union[str, Exception]] = []
        self._ids = itertools.count(1)

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
        self.created.append(
            {
                "amount_cents": amount_cents,
                "currency": currency,
                "metadata": dict(metadata),
                "payment_method": payment_method,
                "customer": customer,
                "confirm": confirm,
                "off_session": off_session,
            }
        )
        status = "succeeded" if confirm else "requires_payment_method"
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            status = outcome
        intent_id = f"pi_{next(self._ids)}"
        intent = GatewayIntent(
            id=intent_id,
            status=status,
            amount_cents=amount_cents,
            currency=currency,
            client_secret=f"{intent_id}_secret",
            payment_method=payment_method,
            customer=customer,
            metadata=dict(metadata),
        )
        self.intents[intent_id] = intent
        return intent

    async def retrieve_intent(self, intent_ref: str) -> GatewayIntent:
        try:
            return self.intents[intent_ref]
        except KeyError:
            raise GatewayError(f"No such payment_intent: {intent_ref}", retryable=False) from None

    async def confirm_intent(self, intent_ref: str, payment_method: Optional[str] = None) -> GatewayIntent:
        intent = await self.retrieve_intent(intent_ref)
        intent.status = "succeeded"
        if payment_method:
            intent.payment_method = payment_method
        return intent

    async def refund(self, intent_ref: str, amount_cents: Optional[int] = None) -> GatewayRefund:
        self.refunds.append((intent_ref, amount_cents))
        return GatewayRefund(id=f"re_{len(self.refunds)}", status="succeeded")

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: str,
        secret: Optional[str] = None,
    ) -> GatewayEvent:
        if signature != VALID_SIGNATURE:
            raise WebhookSignatureError("Invalid webhook signature")
        data = json.loads(payload)
        return GatewayEvent(id=data["id"], type=data["type"], intent=self.intents[data["intent"]])

    def settle(self, intent_ref: str, status: str, payment_method: Optional[str] = None) -> None:
        intent = self.intents[intent_ref]
        intent.status = status
        if payment_method is not None:
            intent.payment_method = payment_method
            intent.customer = "cus_test"


class RecordingBookings:
    def __init__(self) -> None:
        self.paid: list[str] = []
        self.failed: list[str] = []

    async def mark_paid(self, booking_id: str) -> None:
        self.paid.append(booking_id)

    async def mark_payment_failed(self, booking_id: str) -> None:
        self.failed.append(booking_id)


def webhook_payload(event_type: str, intent_ref: str, event_id: str = "evt_1") -> bytes:
    return json.dumps({"id": event_id, "type": event_type, "intent": intent_ref}).encode()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        environment="test",
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"),
        wallet=WalletSettings(currency_change_cooldown_seconds=3600, max_write_attempts=5),
        retry=RetrySettings(
            max_retries=3,
            initial_delay_seconds=1.0,
            backoff_factor=2.0,
            max_delay_seconds=3.0,
            startup_delay_seconds=0,
        ),
    )


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def bookings() -> RecordingBookings:
    return RecordingBookings()


@pytest_asyncio.fixture
async def container(
    settings: Settings,
    gateway: FakeGateway,
    bookings: RecordingBookings,
) -> AsyncGenerator[ApplicationContainer, Any]:
    """Container backed by a fresh SQLite file and the fake gateway."""
    container = ApplicationContainer.build(settings, gateway=gateway, bookings=bookings)
    await init_db(container.engine)
    yield container
    await container.dispose()


async def fund_wallet(container: ApplicationContainer, user_id: str, amount_cents: int, currency: str = "USD") -> None:
    async with container.session() as session:
        await container.wallet_service(session).credit(
            user_id=user_id,
            amount_cents=amount_cents,
            currency=currency,
            description="Test funding",
        )
