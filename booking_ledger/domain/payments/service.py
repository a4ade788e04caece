"""Payment orchestration.

Payments move ``pending -> completed | failed`` and ``completed -> refunded``.
Every transition is a conditional update on the current status, so a
duplicated gateway notification or a second refund request finds nothing to
change and completes the payment (or credits the wallet) at most once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from booking_ledger.core.clock import as_utc, utcnow
from booking_ledger.core.config import Settings
from booking_ledger.db.models import Payment as PaymentModel, generate_uuid
from booking_ledger.domain.cancellation import calculate_fee
from booking_ledger.domain.common.exceptions import InvalidAmountError
from booking_ledger.domain.currency import CurrencyConverter
from booking_ledger.domain.discounts import DiscountService, calculate_discounted_amount
from booking_ledger.domain.wallets import InsufficientFundsError, UnsupportedCurrencyError, WalletService
from booking_ledger.infrastructure.database.repositories.payment_repository import SqlPaymentRepository

from .exceptions import (
    AlreadyRefundedError,
    CancellationNotAllowedError,
    GatewayNotConfiguredError,
    PaymentNotFoundError,
    PaymentNotRefundableError,
    UnsupportedPaymentMethodError,
)
from .gateway import (
    INTENT_SUCCEEDED,
    WEBHOOK_INTENT_FAILED,
    WEBHOOK_INTENT_SUCCEEDED,
    BookingCollaborator,
    GatewayIntent,
    LoggingBookingCollaborator,
    PaymentGateway,
)
from .models import (
    CancellationRefund,
    PaymentMethod,
    PaymentPurpose,
    PaymentRecord,
    PaymentResult,
    PaymentStatus,
    RefundResult,
)
from .repository import PaymentRepository

logger = logging.getLogger(__name__)

# names callers use for card payments through the external gateway
METHOD_ALIASES = {"stripe": PaymentMethod.GATEWAY, "card": PaymentMethod.GATEWAY}

DEFAULT_REFUND_REASON = "Refund requested"


def parse_method(method: str | PaymentMethod) -> PaymentMethod:
    if isinstance(method, PaymentMethod):
        return method
    key = method.strip().lower()
    if key in METHOD_ALIASES:
        return METHOD_ALIASES[key]
    try:
        return PaymentMethod(key)
    except ValueError as exc:
        raise UnsupportedPaymentMethodError(method) from exc


@dataclass(slots=True)
class PaymentService:
    repository: PaymentRepository
    wallets: WalletService
    discounts: DiscountService
    gateway: Optional[PaymentGateway] = None
    bookings: BookingCollaborator = field(default_factory=LoggingBookingCollaborator)
    clock: Callable[[], datetime] = utcnow

    @classmethod
    def with_session(
        cls,
        session: AsyncSession,
        converter: CurrencyConverter,
        *,
        gateway: Optional[PaymentGateway] = None,
        bookings: Optional[BookingCollaborator] = None,
        settings: Optional[Settings] = None,
    ) -> "PaymentService":
        return cls(
            SqlPaymentRepository(session),
            WalletService.with_session(session, converter, settings),
            DiscountService.with_session(session),
            gateway=gateway,
            bookings=bookings or LoggingBookingCollaborator(),
        )

    async def create_payment(
        self,
        *,
        user_id: str,
        amount_cents: int,
        currency: str,
        method: str | PaymentMethod,
        booking_id: Optional[str] = None,
        discount_code: Optional[str] = None,
        item_type: Optional[str] = None,
    ) -> PaymentResult:
        method = parse_method(method)
        currency = self._check_currency(currency)
        if amount_cents <= 0:
            raise InvalidAmountError(amount_cents)

        discount = None
        final_amount = amount_cents
        if discount_code:
            discount = await self.discounts.validate(discount_code, amount_cents, item_type)
            final_amount = calculate_discounted_amount(discount, amount_cents)

        payment_id = generate_uuid()
        fields = dict(
            id=payment_id,
            user_id=user_id,
            booking_id=booking_id,
            amount_cents=final_amount,
            original_amount_cents=amount_cents,
            currency=currency,
            method=method.value,
            purpose=PaymentPurpose.BOOKING.value,
            discount_code=discount.code if discount else None,
        )

        if final_amount == 0:
            if discount is not None:
                await self.discounts.apply(discount, amount_cents)
            model = await self.repository.create(status=PaymentStatus.COMPLETED.value, **fields)
            logger.info("Payment %s fully covered by discount %s", payment_id, fields["discount_code"])
            await self._notify_paid(model)
            return PaymentResult(payment=self._to_record(model))

        if method is PaymentMethod.WALLET:
            try:
                await self.wallets.debit(
                    user_id=user_id,
                    amount_cents=final_amount,
                    currency=currency,
                    description=f"Payment for booking {booking_id}" if booking_id else "Wallet payment",
                    reference=payment_id,
                )
            except InsufficientFundsError as exc:
                model = await self.repository.create(
                    status=PaymentStatus.FAILED.value,
                    failure_reason=exc.code,
                    **fields,
                )
                logger.warning("Wallet payment %s for user %s failed: %s", payment_id, user_id, exc)
                if booking_id:
                    await self.bookings.mark_payment_failed(booking_id)
                return PaymentResult(payment=self._to_record(model), error=exc)

            if discount is not None:
                await self.discounts.apply(discount, amount_cents)
            model = await self.repository.create(status=PaymentStatus.COMPLETED.value, **fields)
            logger.info("Wallet payment %s completed for user %s (%s cents)", payment_id, user_id, final_amount)
            await self._notify_paid(model)
            return PaymentResult(payment=self._to_record(model))

        gateway = self._require_gateway()
        if discount is not None:
            await self.discounts.apply(discount, amount_cents)
        intent = await gateway.create_intent(
            final_amount,
            currency,
            self._metadata(payment_id, user_id, booking_id, PaymentPurpose.BOOKING),
        )
        model = await self.repository.create(
            status=PaymentStatus.PENDING.value,
            gateway_ref=intent.id,
            **fields,
        )
        logger.info("Created gateway payment %s with intent %s", payment_id, intent.id)
        return PaymentResult(payment=self._to_record(model), client_secret=intent.client_secret)

    async def add_funds(self, *, user_id: str, amount_cents: int, currency: str) -> PaymentResult:
        """Start a gateway charge that credits the wallet once it succeeds."""
        currency = self._check_currency(currency)
        if amount_cents <= 0:
            raise InvalidAmountError(amount_cents)
        gateway = self._require_gateway()
        await self.wallets.ensure_wallet(user_id, currency)

        payment_id = generate_uuid()
        intent = await gateway.create_intent(
            amount_cents,
            currency,
            self._metadata(payment_id, user_id, None, PaymentPurpose.WALLET_FUNDING),
        )
        model = await self.repository.create(
            id=payment_id,
            user_id=user_id,
            amount_cents=amount_cents,
            original_amount_cents=amount_cents,
            currency=currency,
            status=PaymentStatus.PENDING.value,
            method=PaymentMethod.GATEWAY.value,
            purpose=PaymentPurpose.WALLET_FUNDING.value,
            gateway_ref=intent.id,
        )
        logger.info("Created wallet funding payment %s for user %s", payment_id, user_id)
        return PaymentResult(payment=self._to_record(model), client_secret=intent.client_secret)

    async def confirm_payment(self, *, user_id: str, intent_ref: str) -> PaymentRecord:
        """Check a pending payment against the gateway after the client finished paying."""
        model = await self.repository.get_by_gateway_ref(intent_ref)
        if model is None or model.user_id != user_id:
            raise PaymentNotFoundError(intent_ref)
        if model.status != PaymentStatus.PENDING.value:
            return self._to_record(model)

        intent = await self._require_gateway().retrieve_intent(intent_ref)
        if intent.status == INTENT_SUCCEEDED:
            record = await self.on_gateway_success(intent_ref)
        elif intent.status == "canceled":
            record = await self.on_gateway_failure(intent_ref, reason="canceled")
        else:
            logger.info("Intent %s still %s", intent_ref, intent.status)
            record = None
        return record or self._to_record(model)

    async def on_gateway_success(self, intent_ref: str) -> Optional[PaymentRecord]:
        model = await self.repository.transition_by_gateway_ref(
            intent_ref,
            from_statuses=(PaymentStatus.PENDING.value, PaymentStatus.FAILED.value),
            to_status=PaymentStatus.COMPLETED.value,
            failure_reason=None,
        )
        if model is None:
            existing = await self.repository.get_by_gateway_ref(intent_ref)
            if existing is None:
                logger.warning("Success notification for unknown intent %s", intent_ref)
                return None
            logger.info("Intent %s already settled as %s", intent_ref, existing.status)
            return self._to_record(existing)

        logger.info("Payment %s completed via intent %s", model.id, intent_ref)
        await self._settle(model)
        return self._to_record(model)

    async def on_gateway_failure(self, intent_ref: str, reason: Optional[str] = None) -> Optional[PaymentRecord]:
        model = await self.repository.transition_by_gateway_ref(
            intent_ref,
            from_statuses=(PaymentStatus.PENDING.value,),
            to_status=PaymentStatus.FAILED.value,
            failure_reason=reason or "payment_failed",
        )
        if model is None:
            existing = await self.repository.get_by_gateway_ref(intent_ref)
            if existing is None:
                logger.warning("Failure notification for unknown intent %s", intent_ref)
                return None
            return self._to_record(existing)

        logger.warning("Payment %s failed via intent %s: %s", model.id, intent_ref, model.failure_reason)
        if model.booking_id:
            await self.bookings.mark_payment_failed(model.booking_id)
        return self._to_record(model)

    async def handle_webhook(self, payload: bytes, signature: str) -> Optional[PaymentRecord]:
        event = self._require_gateway().verify_webhook_signature(payload, signature)
        if event.type == WEBHOOK_INTENT_SUCCEEDED:
            return await self.on_gateway_success(event.intent.id)
        if event.type == WEBHOOK_INTENT_FAILED:
            return await self.on_gateway_failure(event.intent.id)
        logger.info("Ignoring webhook event %s (%s)", event.id, event.type)
        return None

    async def refund(
        self,
        payment_id: str,
        *,
        reason: Optional[str] = None,
        amount_cents: Optional[int] = None,
    ) -> RefundResult:
        model = await self.repository.get(payment_id)
        if model is None:
            raise PaymentNotFoundError(payment_id)
        if model.status == PaymentStatus.REFUNDED.value:
            raise AlreadyRefundedError(payment_id)
        if model.status != PaymentStatus.COMPLETED.value:
            raise PaymentNotRefundableError(payment_id, model.status)

        refund_amount = model.amount_cents if amount_cents is None else amount_cents
        if refund_amount <= 0 or refund_amount > model.amount_cents:
            raise InvalidAmountError(refund_amount)

        method = PaymentMethod(model.method)
        gateway = self._require_gateway() if method is PaymentMethod.GATEWAY else None

        updated = await self.repository.transition(
            payment_id,
            from_statuses=(PaymentStatus.COMPLETED.value,),
            to_status=PaymentStatus.REFUNDED.value,
            refund_reason=reason or DEFAULT_REFUND_REASON,
            refunded_amount_cents=refund_amount,
        )
        if updated is None:
            raise AlreadyRefundedError(payment_id)

        wallet = None
        gateway_refund_ref = None
        if gateway is None:
            wallet = await self.wallets.credit(
                user_id=model.user_id,
                amount_cents=refund_amount,
                currency=model.currency,
                description=f"Refund for payment {payment_id}",
                reference=payment_id,
            )
        else:
            if model.purpose == PaymentPurpose.WALLET_FUNDING.value:
                # funds already credited to the wallet have to come back out first
                wallet = await self.wallets.debit(
                    user_id=model.user_id,
                    amount_cents=refund_amount,
                    currency=model.currency,
                    description=f"Reversal of wallet funding {payment_id}",
                    reference=payment_id,
                )
            partial = refund_amount if refund_amount < model.amount_cents else None
            gateway_refund = await gateway.refund(model.gateway_ref, partial)
            gateway_refund_ref = gateway_refund.id
            updated = await self.repository.update_fields(payment_id, gateway_refund_ref=gateway_refund_ref)

        logger.info("Refunded %s cents of payment %s via %s", refund_amount, payment_id, method.value)
        return RefundResult(
            payment=self._to_record(updated),
            refunded_amount_cents=refund_amount,
            gateway_refund_ref=gateway_refund_ref,
            wallet=wallet,
        )

    async def refund_for_cancellation(
        self,
        payment_id: str,
        *,
        item_type: str,
        booking_date: datetime,
        now: Optional[datetime] = None,
    ) -> CancellationRefund:
        """Refund the share of a payment the cancellation policy allows."""
        model = await self.repository.get(payment_id)
        if model is None:
            raise PaymentNotFoundError(payment_id)

        fee = calculate_fee(item_type, booking_date, now or self.clock(), model.amount_cents)
        if not fee.can_cancel:
            raise CancellationNotAllowedError(fee.reason)
        if fee.refund_amount_cents == 0:
            logger.info("Cancellation of payment %s earns no refund: %s", payment_id, fee.reason)
            return CancellationRefund(fee=fee)

        refund = await self.refund(
            payment_id,
            reason=f"Refund for canceled booking - {fee.reason}",
            amount_cents=fee.refund_amount_cents,
        )
        return CancellationRefund(fee=fee, refund=refund)

    async def get_payment(self, payment_id: str) -> PaymentRecord:
        model = await self.repository.get(payment_id)
        if model is None:
            raise PaymentNotFoundError(payment_id)
        return self._to_record(model)

    async def list_payments(self, user_id: str, limit: int = 50, offset: int = 0) -> list[PaymentRecord]:
        rows = await self.repository.list_for_user(user_id, limit, offset)
        return [self._to_record(row) for row in rows]

    async def list_retry_candidates(
        self,
        *,
        lookback: timedelta,
        claim_timeout: timedelta,
        limit: int = 100,
    ) -> list[PaymentRecord]:
        now = self.clock()
        rows = await self.repository.list_retry_candidates(
            updated_since=now - lookback,
            claim_expired_before=now - claim_timeout,
            limit=limit,
        )
        return [self._to_record(row) for row in rows]

    async def claim_retry(self, payment_id: str, *, claim_timeout: timedelta) -> bool:
        now = self.clock()
        return await self.repository.claim_for_retry(
            payment_id,
            now=now,
            claim_expired_before=now - claim_timeout,
        )

    async def complete_retry(self, payment_id: str, intent: GatewayIntent, attempt: int) -> Optional[PaymentRecord]:
        current = await self.repository.get(payment_id)
        if current is None:
            raise PaymentNotFoundError(payment_id)
        model = await self.repository.transition(
            payment_id,
            from_statuses=(PaymentStatus.FAILED.value,),
            to_status=PaymentStatus.COMPLETED.value,
            gateway_ref=intent.id,
            retried_from=current.gateway_ref,
            retry_attempt=attempt,
            retry_attempted=True,
            retry_claimed_at=None,
            failure_reason=None,
        )
        if model is None:
            logger.warning("Payment %s left failed state before its retry settled", payment_id)
            return None
        logger.info("Payment %s recovered by retry %s (intent %s)", payment_id, attempt, intent.id)
        await self._settle(model)
        return self._to_record(model)

    async def track_retry_intent(self, payment_id: str, intent: GatewayIntent, attempt: int) -> Optional[PaymentRecord]:
        """Point a failed payment at a retry intent the gateway is still processing.

        The eventual success notification for ``intent`` then completes it.
        """
        current = await self.repository.get(payment_id)
        if current is None:
            raise PaymentNotFoundError(payment_id)
        model = await self.repository.update_fields(
            payment_id,
            gateway_ref=intent.id,
            retried_from=current.gateway_ref,
            retry_attempt=attempt,
            retry_attempted=True,
            retry_claimed_at=None,
        )
        logger.info("Payment %s waiting on retry intent %s", payment_id, intent.id)
        return self._to_record(model) if model is not None else None

    async def finish_retry(self, payment_id: str, reason: Optional[str] = None) -> None:
        fields = {"retry_attempted": True, "retry_claimed_at": None}
        if reason:
            fields["failure_reason"] = reason
        await self.repository.update_fields(payment_id, **fields)

    async def release_retry(self, payment_id: str) -> None:
        await self.repository.update_fields(payment_id, retry_claimed_at=None)

    async def _settle(self, model: PaymentModel) -> None:
        if model.purpose == PaymentPurpose.WALLET_FUNDING.value:
            await self.wallets.credit(
                user_id=model.user_id,
                amount_cents=model.amount_cents,
                currency=model.currency,
                description="Added funds to wallet",
                reference=model.id,
            )
        await self._notify_paid(model)

    async def _notify_paid(self, model: PaymentModel) -> None:
        if model.booking_id:
            await self.bookings.mark_paid(model.booking_id)

    def _require_gateway(self) -> PaymentGateway:
        if self.gateway is None:
            raise GatewayNotConfiguredError()
        return self.gateway

    def _check_currency(self, currency: str) -> str:
        currency = currency.upper()
        if not self.wallets.converter.supports(currency):
            raise UnsupportedCurrencyError(currency)
        return currency

    @staticmethod
    def _metadata(
        payment_id: str,
        user_id: str,
        booking_id: Optional[str],
        purpose: PaymentPurpose,
    ) -> dict[str, str]:
        metadata = {"payment_id": payment_id, "user_id": user_id, "purpose": purpose.value}
        if booking_id:
            metadata["booking_id"] = booking_id
        return metadata

    @staticmethod
    def _to_record(model: PaymentModel) -> PaymentRecord:
        return PaymentRecord(
            id=model.id,
            user_id=model.user_id,
            booking_id=model.booking_id,
            amount_cents=model.amount_cents,
            original_amount_cents=model.original_amount_cents,
            currency=model.currency,
            status=PaymentStatus(model.status),
            method=PaymentMethod(model.method),
            purpose=PaymentPurpose(model.purpose),
            gateway_ref=model.gateway_ref,
            discount_code=model.discount_code,
            failure_reason=model.failure_reason,
            refund_reason=model.refund_reason,
            refunded_amount_cents=model.refunded_amount_cents,
            retry_attempted=bool(model.retry_attempted),
            retried_from=model.retried_from,
            retry_attempt=model.retry_attempt,
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at),
        )
