"""
Tests for payment orchestration: wallet and gateway payments, gateway
notifications, refunds and cancellation refunds.
"""
import asyncio
from datetime import timedelta
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio

from booking_ledger.core.clock import utcnow
from booking_ledger.core.config import Settings
from booking_ledger.core.container import ApplicationContainer
from booking_ledger.domain.common.exceptions import InvalidAmountError
from booking_ledger.domain.discounts import DiscountCreateInput, DiscountKind
from booking_ledger.domain.payments import (
    AlreadyRefundedError,
    CancellationNotAllowedError,
    GatewayNotConfiguredError,
    PaymentMethod,
    PaymentNotFoundError,
    PaymentNotRefundableError,
    PaymentPurpose,
    PaymentStatus,
    UnsupportedPaymentMethodError,
    WebhookSignatureError,
)
from booking_ledger.domain.wallets import InsufficientFundsError
from booking_ledger.infrastructure.database import init_db

from conftest import VALID_SIGNATURE, FakeGateway, RecordingBookings, fund_wallet, webhook_payload


async def pay(container: ApplicationContainer, **kwargs: Any):
    fields: dict[str, Any] = {"user_id": "user-1", "currency": "USD", "booking_id": "b-1"}
    fields.update(kwargs)
    async with container.session() as session:
        return await container.payment_service(session).create_payment(**fields)


async def wallet_balance(container: ApplicationContainer, user_id: str = "user-1") -> int:
    async with container.session() as session:
        wallet = await container.wallet_service(session).ensure_wallet(user_id)
    return wallet.balance_cents


@pytest_asyncio.fixture
async def offline_container(
    settings: Settings, bookings: RecordingBookings
) -> AsyncGenerator[ApplicationContainer, Any]:
    """Container without a configured gateway."""
    container = ApplicationContainer.build(settings, bookings=bookings)
    await init_db(container.engine)
    yield container
    await container.dispose()


class TestWalletPayments:
    @pytest.mark.asyncio
    async def test_wallet_payment_debits_and_marks_booking_paid(
        self, container: ApplicationContainer, bookings: RecordingBookings
    ) -> None:
        await fund_wallet(container, "user-1", 5000)

        result = await pay(container, amount_cents=3000, method="wallet")

        assert result.success
        assert result.payment.status is PaymentStatus.COMPLETED
        assert result.payment.method is PaymentMethod.WALLET
        assert await wallet_balance(container) == 2000
        assert bookings.paid == ["b-1"]

    @pytest.mark.asyncio
    async def test_insufficient_funds_persists_failed_payment(
        self, container: ApplicationContainer, bookings: RecordingBookings
    ) -> None:
        await fund_wallet(container, "user-1", 1000)

        result = await pay(container, amount_cents=3000, method="wallet")

        assert not result.success
        assert isinstance(result.error, InsufficientFundsError)
        assert result.payment.status is PaymentStatus.FAILED
        assert result.payment.failure_reason == "insufficient_funds"
        assert await wallet_balance(container) == 1000
        assert bookings.paid == []
        assert bookings.failed == ["b-1"]

        async with container.session() as session:
            payments = await container.payment_service(session).list_payments("user-1")
        assert [p.status for p in payments] == [PaymentStatus.FAILED]

    @pytest.mark.asyncio
    async def test_charge_rounding_to_zero_wallet_cents_is_rejected(
        self, container: ApplicationContainer, bookings: RecordingBookings
    ) -> None:
        await fund_wallet(container, "user-1", 1000, "USD")

        with pytest.raises(InvalidAmountError):
            await pay(container, amount_cents=41, currency="INR", method="wallet")

        assert await wallet_balance(container) == 1000
        assert bookings.paid == []
        async with container.session() as session:
            assert await container.payment_service(session).list_payments("user-1") == []

    @pytest.mark.asyncio
    async def test_discount_applied_to_wallet_payment(self, container: ApplicationContainer) -> None:
        await fund_wallet(container, "user-1", 10000)
        async with container.session() as session:
            await container.discount_service(session).create_discount(
                DiscountCreateInput(
                    code="SAVE20",
                    kind=DiscountKind.PERCENTAGE,
                    value=2000,
                    max_uses=1,
                    max_discount_cents=1500,
                    expires_at=utcnow() + timedelta(days=1),
                )
            )

        result = await pay(container, amount_cents=10000, method="wallet", discount_code="save20")

        assert result.payment.amount_cents == 8500
        assert result.payment.original_amount_cents == 10000
        assert result.payment.discount_code == "SAVE20"
        assert await wallet_balance(container) == 1500
        async with container.session() as session:
            discount = (await container.discount_service(session).list_discounts())[0]
        assert discount.current_uses == 1

    @pytest.mark.asyncio
    async def test_fully_discounted_order_completes_without_charging(
        self, container: ApplicationContainer, gateway: FakeGateway, bookings: RecordingBookings
    ) -> None:
        async with container.session() as session:
            await container.discount_service(session).create_discount(
                DiscountCreateInput(
                    code="FREE",
                    kind=DiscountKind.FIXED,
                    value=5000,
                    max_uses=5,
                    expires_at=utcnow() + timedelta(days=1),
                )
            )

        result = await pay(container, amount_cents=3000, method="gateway", discount_code="FREE")

        assert result.payment.status is PaymentStatus.COMPLETED
        assert result.payment.amount_cents == 0
        assert gateway.created == []
        assert bookings.paid == ["b-1"]


class TestGatewayPayments:
    @pytest.mark.asyncio
    async def test_gateway_payment_starts_pending(self, container: ApplicationContainer, gateway: FakeGateway) -> None:
        result = await pay(container, amount_cents=4200, method="gateway")

        assert result.payment.status is PaymentStatus.PENDING
        assert result.client_secret == f"{result.payment.gateway_ref}_secret"
        created = gateway.created[0]
        assert created["amount_cents"] == 4200
        assert created["metadata"]["booking_id"] == "b-1"
        assert created["metadata"]["payment_id"] == result.payment.id

    @pytest.mark.asyncio
    async def test_card_is_an_alias_for_gateway(self, container: ApplicationContainer) -> None:
        result = await pay(container, amount_cents=1000, method="card")
        assert result.payment.method is PaymentMethod.GATEWAY

    @pytest.mark.asyncio
    async def test_unsupported_method(self, container: ApplicationContainer) -> None:
        with pytest.raises(UnsupportedPaymentMethodError):
            await pay(container, amount_cents=1000, method="cash")

    @pytest.mark.asyncio
    async def test_gateway_required(self, offline_container: ApplicationContainer) -> None:
        with pytest.raises(GatewayNotConfiguredError):
            await pay(offline_container, amount_cents=1000, method="gateway")

    @pytest.mark.asyncio
    async def test_duplicate_success_notifications_complete_once(
        self, container: ApplicationContainer, bookings: RecordingBookings
    ) -> None:
        result = await pay(container, amount_cents=4200, method="gateway")
        ref = result.payment.gateway_ref

        for _ in range(3):
            async with container.session() as session:
                record = await container.payment_service(session).on_gateway_success(ref)
            assert record.status is PaymentStatus.COMPLETED

        assert bookings.paid == ["b-1"]

    @pytest.mark.asyncio
    async def test_failure_after_success_does_not_downgrade(
        self, container: ApplicationContainer, bookings: RecordingBookings
    ) -> None:
        result = await pay(container, amount_cents=4200, method="gateway")
        ref = result.payment.gateway_ref
        async with container.session() as session:
            await container.payment_service(session).on_gateway_success(ref)
        async with container.session() as session:
            record = await container.payment_service(session).on_gateway_failure(ref)

        assert record.status is PaymentStatus.COMPLETED
        assert bookings.failed == []

    @pytest.mark.asyncio
    async def test_failure_marks_booking(self, container: ApplicationContainer, bookings: RecordingBookings) -> None:
        result = await pay(container, amount_cents=4200, method="gateway")
        async with container.session() as session:
            record = await container.payment_service(session).on_gateway_failure(
                result.payment.gateway_ref, reason="card_declined"
            )

        assert record.status is PaymentStatus.FAILED
        assert record.failure_reason == "card_declined"
        assert bookings.failed == ["b-1"]

    @pytest.mark.asyncio
    async def test_unknown_intent_is_ignored(self, container: ApplicationContainer) -> None:
        async with container.session() as session:
            assert await container.payment_service(session).on_gateway_success("pi_missing") is None

    @pytest.mark.asyncio
    async def test_webhook_dispatch(self, container: ApplicationContainer, bookings: RecordingBookings) -> None:
        result = await pay(container, amount_cents=4200, method="gateway")
        payload = webhook_payload("payment_intent.succeeded", result.payment.gateway_ref)

        async with container.session() as session:
            record = await container.payment_service(session).handle_webhook(payload, VALID_SIGNATURE)

        assert record.status is PaymentStatus.COMPLETED
        assert bookings.paid == ["b-1"]

    @pytest.mark.asyncio
    async def test_webhook_with_bad_signature(self, container: ApplicationContainer) -> None:
        result = await pay(container, amount_cents=4200, method="gateway")
        payload = webhook_payload("payment_intent.succeeded", result.payment.gateway_ref)

        async with container.session() as session:
            with pytest.raises(WebhookSignatureError):
                await container.payment_service(session).handle_webhook(payload, "forged")

    @pytest.mark.asyncio
    async def test_confirm_payment_checks_the_gateway(
        self, container: ApplicationContainer, gateway: FakeGateway
    ) -> None:
        result = await pay(container, amount_cents=4200, method="gateway")
        ref = result.payment.gateway_ref

        async with container.session() as session:
            still_pending = await container.payment_service(session).confirm_payment(user_id="user-1", intent_ref=ref)
        assert still_pending.status is PaymentStatus.PENDING

        gateway.settle(ref, "succeeded")
        async with container.session() as session:
            record = await container.payment_service(session).confirm_payment(user_id="user-1", intent_ref=ref)
        assert record.status is PaymentStatus.COMPLETED

        async with container.session() as session:
            with pytest.raises(PaymentNotFoundError):
                await container.payment_service(session).confirm_payment(user_id="someone-else", intent_ref=ref)


class TestAddFunds:
    @pytest.mark.asyncio
    async def test_wallet_credited_once_on_success(self, container: ApplicationContainer) -> None:
        async with container.session() as session:
            result = await container.payment_service(session).add_funds(
                user_id="user-1", amount_cents=2500, currency="USD"
            )
        assert result.payment.purpose is PaymentPurpose.WALLET_FUNDING
        assert result.payment.status is PaymentStatus.PENDING
        assert await wallet_balance(container) == 0

        for _ in range(2):
            async with container.session() as session:
                await container.payment_service(session).on_gateway_success(result.payment.gateway_ref)

        assert await wallet_balance(container) == 2500


class TestRefunds:
    @pytest.mark.asyncio
    async def test_wallet_refund_credits_back_once(self, container: ApplicationContainer) -> None:
        await fund_wallet(container, "user-1", 5000)
        payment = (await pay(container, amount_cents=3000, method="wallet")).payment

        async with container.session() as session:
            refund = await container.payment_service(session).refund(payment.id, reason="Changed plans")

        assert refund.payment.status is PaymentStatus.REFUNDED
        assert refund.payment.refund_reason == "Changed plans"
        assert refund.refunded_amount_cents == 3000
        assert refund.wallet.balance_cents == 5000

        async with container.session() as session:
            with pytest.raises(AlreadyRefundedError):
                await container.payment_service(session).refund(payment.id)
        assert await wallet_balance(container) == 5000

    @pytest.mark.asyncio
    async def test_gateway_refund(self, container: ApplicationContainer, gateway: FakeGateway) -> None:
        payment = (await pay(container, amount_cents=4200, method="gateway")).payment
        async with container.session() as session:
            await container.payment_service(session).on_gateway_success(payment.gateway_ref)

        async with container.session() as session:
            refund = await container.payment_service(session).refund(payment.id)

        assert gateway.refunds == [(payment.gateway_ref, None)]
        assert refund.gateway_refund_ref == "re_1"
        assert refund.payment.refund_reason == "Refund requested"

    @pytest.mark.asyncio
    async def test_pending_payment_is_not_refundable(self, container: ApplicationContainer) -> None:
        payment = (await pay(container, amount_cents=4200, method="gateway")).payment
        async with container.session() as session:
            with pytest.raises(PaymentNotRefundableError):
                await container.payment_service(session).refund(payment.id)

    @pytest.mark.asyncio
    async def test_unknown_payment(self, container: ApplicationContainer) -> None:
        async with container.session() as session:
            with pytest.raises(PaymentNotFoundError):
                await container.payment_service(session).refund("missing")

    @pytest.mark.asyncio
    async def test_concurrent_refunds_pay_out_once(self, container: ApplicationContainer) -> None:
        await fund_wallet(container, "user-1", 5000)
        payment = (await pay(container, amount_cents=3000, method="wallet")).payment

        async def refund() -> None:
            async with container.session() as session:
                await container.payment_service(session).refund(payment.id)

        results = await asyncio.gather(*(refund() for _ in range(4)), return_exceptions=True)

        assert sum(1 for r in results if r is None) == 1
        assert all(isinstance(r, AlreadyRefundedError) for r in results if r is not None)
        assert await wallet_balance(container) == 5000

    @pytest.mark.asyncio
    async def test_refunding_wallet_funding_takes_funds_back(
        self, container: ApplicationContainer, gateway: FakeGateway
    ) -> None:
        async with container.session() as session:
            funding = await container.payment_service(session).add_funds(
                user_id="user-1", amount_cents=2500, currency="USD"
            )
        async with container.session() as session:
            await container.payment_service(session).on_gateway_success(funding.payment.gateway_ref)

        async with container.session() as session:
            refund = await container.payment_service(session).refund(funding.payment.id)

        assert refund.wallet.balance_cents == 0
        assert gateway.refunds == [(funding.payment.gateway_ref, None)]


class TestCancellationRefunds:
    @pytest.mark.asyncio
    async def test_partial_refund_follows_policy(self, container: ApplicationContainer) -> None:
        await fund_wallet(container, "user-1", 10000)
        payment = (await pay(container, amount_cents=10000, method="wallet")).payment
        now = utcnow()

        async with container.session() as session:
            result = await container.payment_service(session).refund_for_cancellation(
                payment.id,
                item_type="venue",
                booking_date=now + timedelta(hours=18),
                now=now,
            )

        assert result.fee.refund_percentage == 80
        assert result.refund.refunded_amount_cents == 8000
        assert result.refund.payment.refund_reason.startswith("Refund for canceled booking - ")
        assert await wallet_balance(container) == 8000

    @pytest.mark.asyncio
    async def test_no_refund_inside_last_tier(self, container: ApplicationContainer) -> None:
        await fund_wallet(container, "user-1", 10000)
        payment = (await pay(container, amount_cents=10000, method="wallet")).payment
        now = utcnow()

        async with container.session() as session:
            result = await container.payment_service(session).refund_for_cancellation(
                payment.id,
                item_type="venue",
                booking_date=now + timedelta(hours=2),
                now=now,
            )

        assert result.refund is None
        assert result.fee.cancellation_fee_cents == 10000

    @pytest.mark.asyncio
    async def test_past_booking(self, container: ApplicationContainer) -> None:
        await fund_wallet(container, "user-1", 10000)
        payment = (await pay(container, amount_cents=10000, method="wallet")).payment

        async with container.session() as session:
            with pytest.raises(CancellationNotAllowedError):
                await container.payment_service(session).refund_for_cancellation(
                    payment.id,
                    item_type="venue",
                    booking_date=utcnow() - timedelta(hours=1),
                )
