"""
Tests for the result envelope returned by the ledger facade.
"""
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from pydantic import ValidationError

from booking_ledger.core.clock import utcnow
from booking_ledger.core.container import ApplicationContainer
from booking_ledger.domain.discounts import DiscountKind
from booking_ledger.domain.payments import PaymentStatus
from booking_ledger.interfaces import LedgerFacade
from booking_ledger.schemas import (
    AddFundsRequest,
    CancellationFeeRequest,
    DiscountCheckRequest,
    DiscountCreateRequest,
    DiscountUpdateRequest,
    PaymentCreateRequest,
    RefundRequest,
    WalletCreditRequest,
    WalletCurrencyRequest,
)

from conftest import VALID_SIGNATURE, FakeGateway, webhook_payload


@pytest_asyncio.fixture
async def facade(container: ApplicationContainer) -> LedgerFacade:
    return LedgerFacade(container)


async def credit(facade: LedgerFacade, amount_cents: int, user_id: str = "user-1") -> None:
    result = await facade.credit_wallet(user_id, WalletCreditRequest(amount_cents=amount_cents, currency="USD"))
    assert result.success


class TestWalletResults:
    @pytest.mark.asyncio
    async def test_new_user_gets_empty_wallet(self, facade: LedgerFacade) -> None:
        result = await facade.get_wallet("user-1")

        assert result.success
        assert result.error is None
        assert result.data.balance_cents == 0
        assert result.data.currency == "USD"

    @pytest.mark.asyncio
    async def test_domain_errors_become_error_codes(self, facade: LedgerFacade) -> None:
        await credit(facade, 1000)
        first = await facade.set_wallet_currency("user-1", WalletCurrencyRequest(currency="INR"))
        second = await facade.set_wallet_currency("user-1", WalletCurrencyRequest(currency="USD"))
        unsupported = await facade.credit_wallet("user-1", WalletCreditRequest(amount_cents=100, currency="GBP"))

        assert first.success
        assert first.data.balance_cents == 83000
        assert not second.success
        assert second.error.code == "currency_change_too_soon"
        assert unsupported.error.code == "unsupported_currency"

    @pytest.mark.asyncio
    async def test_transactions_listed_newest_first(self, facade: LedgerFacade) -> None:
        await credit(facade, 1000)
        await credit(facade, 500)

        result = await facade.list_transactions("user-1")

        assert [tx.amount_cents for tx in result.data.transactions] == [500, 1000]


class TestPaymentResults:
    @pytest.mark.asyncio
    async def test_insufficient_funds_keeps_failed_payment(self, facade: LedgerFacade) -> None:
        await credit(facade, 1000)

        result = await facade.create_payment(
            "user-1",
            PaymentCreateRequest(amount_cents=3000, currency="USD", method="wallet", booking_id="b-1"),
        )

        assert not result.success
        assert result.error.code == "insufficient_funds"
        assert result.error.details["balance_cents"] == 1000
        assert result.data.payment.status is PaymentStatus.FAILED

        listed = await facade.list_payments("user-1")
        assert [p.id for p in listed.data.payments] == [result.data.payment.id]

    @pytest.mark.asyncio
    async def test_gateway_payment_returns_client_secret(self, facade: LedgerFacade) -> None:
        result = await facade.create_payment(
            "user-1",
            PaymentCreateRequest(amount_cents=3000, currency="USD", method="stripe"),
        )

        assert result.success
        assert result.data.client_secret.endswith("_secret")
        assert result.data.payment.status is PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_unexpected_errors_hide_their_message(self, facade: LedgerFacade, gateway: FakeGateway) -> None:
        gateway.outcomes = [RuntimeError("socket closed by peer")]

        result = await facade.create_payment(
            "user-1", PaymentCreateRequest(amount_cents=3000, currency="USD", method="gateway")
        )

        assert result.error.code == "internal_error"
        assert "socket" not in result.error.message
        assert (await facade.list_payments("user-1")).data.payments == []

    @pytest.mark.asyncio
    async def test_unknown_payment(self, facade: LedgerFacade) -> None:
        result = await facade.get_payment("missing")

        assert not result.success
        assert result.error.code == "payment_not_found"

    @pytest.mark.asyncio
    async def test_forged_webhook_rejected(self, facade: LedgerFacade) -> None:
        created = await facade.create_payment(
            "user-1", PaymentCreateRequest(amount_cents=3000, currency="USD", method="gateway")
        )
        payload = webhook_payload("payment_intent.succeeded", created.data.payment.gateway_ref)

        result = await facade.handle_webhook(payload, "t=1,v1=forged")

        assert result.error.code == "webhook_signature_invalid"
        assert (await facade.get_payment(created.data.payment.id)).data.status is PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_partial_refund(self, facade: LedgerFacade) -> None:
        await credit(facade, 5000)
        created = await facade.create_payment(
            "user-1", PaymentCreateRequest(amount_cents=4000, currency="USD", method="wallet")
        )

        result = await facade.refund(created.data.payment.id, RefundRequest(amount_cents=1500, reason="Late start"))

        assert result.success
        assert result.data.refunded_amount_cents == 1500
        assert result.data.wallet.balance_cents == 2500
        assert result.data.payment.refund_reason == "Late start"

        again = await facade.refund(created.data.payment.id)
        assert again.error.code == "already_refunded"

    @pytest.mark.asyncio
    async def test_failed_refund_is_rolled_back(self, facade: LedgerFacade, gateway: FakeGateway) -> None:
        funding = await facade.add_funds("user-1", AddFundsRequest(amount_cents=2500, currency="USD"))
        webhook = webhook_payload("payment_intent.succeeded", funding.data.payment.gateway_ref)
        assert (await facade.handle_webhook(webhook, VALID_SIGNATURE)).success
        spent = await facade.create_payment(
            "user-1", PaymentCreateRequest(amount_cents=2000, currency="USD", method="wallet")
        )
        assert spent.success

        result = await facade.refund(funding.data.payment.id)

        # the funds were already spent, so nothing may change
        assert result.error.code == "insufficient_funds"
        assert gateway.refunds == []
        payment = await facade.get_payment(funding.data.payment.id)
        assert payment.data.status is PaymentStatus.COMPLETED
        assert (await facade.get_wallet("user-1")).data.balance_cents == 500

    @pytest.mark.asyncio
    async def test_cancellation_refund(self, facade: LedgerFacade) -> None:
        await credit(facade, 10000)
        created = await facade.create_payment(
            "user-1", PaymentCreateRequest(amount_cents=10000, currency="USD", method="wallet")
        )
        now = utcnow()

        result = await facade.refund_for_cancellation(
            created.data.payment.id, "equipment", now + timedelta(hours=30), now=now
        )

        assert result.data.fee.refund_percentage == 70
        assert result.data.refund.refunded_amount_cents == 7000
        assert result.data.refund.wallet.balance_cents == 7000


class TestCancellationFee:
    @pytest.mark.asyncio
    async def test_fee_quote(self, facade: LedgerFacade) -> None:
        now = datetime(2026, 5, 1, 9, 0, tzinfo=timezone.utc)

        result = facade.calculate_cancellation_fee(
            CancellationFeeRequest(item_type="venue", booking_date=now + timedelta(hours=8), total_amount_cents=6000),
            now=now,
        )

        assert result.success
        assert result.data.refund_percentage == 50
        assert result.data.refund_amount_cents == 3000
        assert result.data.cancellation_fee_cents == 3000


class TestDiscountAdministration:
    @pytest.mark.asyncio
    async def test_create_quote_update_and_deactivate(self, facade: LedgerFacade) -> None:
        created = await facade.create_discount(
            DiscountCreateRequest(
                code="spring10",
                kind=DiscountKind.FIXED,
                value=1000,
                max_uses=3,
                expires_at=utcnow() + timedelta(days=3),
            )
        )
        assert created.success
        assert created.data.code == "SPRING10"

        quote = await facade.quote_discount(DiscountCheckRequest(code="SPRING10", order_amount_cents=4500))
        assert quote.data.discounted_amount_cents == 3500

        updated = await facade.update_discount(created.data.id, DiscountUpdateRequest(min_order_cents=5000))
        assert updated.data.min_order_cents == 5000
        assert updated.data.value == 1000

        too_small = await facade.validate_discount(DiscountCheckRequest(code="SPRING10", order_amount_cents=4500))
        assert too_small.error.code == "discount_below_minimum_order"

        await facade.deactivate_discount(created.data.id)
        gone = await facade.validate_discount(DiscountCheckRequest(code="SPRING10", order_amount_cents=6000))
        assert gone.error.code == "discount_not_found"
        listed = await facade.list_discounts(include_inactive=False)
        assert listed.data.discounts == []

    @pytest.mark.asyncio
    async def test_duplicate_code(self, facade: LedgerFacade) -> None:
        request = DiscountCreateRequest(
            code="ONCE",
            kind=DiscountKind.PERCENTAGE,
            value=1500,
            max_uses=1,
            expires_at=utcnow() + timedelta(days=1),
        )
        assert (await facade.create_discount(request)).success

        result = await facade.create_discount(request)

        assert result.error.code == "discount_code_exists"

    @pytest.mark.asyncio
    async def test_update_rejects_null_for_required_fields(self, facade: LedgerFacade) -> None:
        for field in ("kind", "value", "max_uses", "expires_at", "applicable_items", "is_active"):
            with pytest.raises(ValidationError):
                DiscountUpdateRequest.model_validate({field: None})

        created = await facade.create_discount(
            DiscountCreateRequest(
                code="CAPPED",
                kind=DiscountKind.PERCENTAGE,
                value=2000,
                max_uses=5,
                expires_at=utcnow() + timedelta(days=1),
                max_discount_cents=500,
            )
        )
        cleared = DiscountUpdateRequest.model_validate({"max_discount_cents": None})
        assert cleared.model_dump(exclude_unset=True) == {"max_discount_cents": None}

        updated = await facade.update_discount(created.data.id, cleared)

        assert updated.success
        assert updated.data.max_discount_cents is None
        assert updated.data.kind is DiscountKind.PERCENTAGE
