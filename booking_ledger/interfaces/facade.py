"""Controller-facing entry point of the ledger.

Every call runs in its own unit of work. Domain failures come back as an
``ApiResult`` carrying a stable error code, and the unit of work is rolled
back so no partial balance change, redemption or status transition survives.
Anything else is logged and reported as ``internal_error`` without its
message.
A wallet payment declined for insufficient funds is the one failure that is
committed: the failed payment record is kept for the caller.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from booking_ledger.core.clock import utcnow
from booking_ledger.core.container import ApplicationContainer
from booking_ledger.domain.cancellation import calculate_fee
from booking_ledger.domain.common.exceptions import LedgerError
from booking_ledger.domain.discounts import DiscountCreateInput, DiscountUpdateInput
from booking_ledger.domain.payments import PaymentRecord, RefundResult
from booking_ledger.schemas import (
    AddFundsRequest,
    ApiResult,
    CancellationFeeRequest,
    CancellationFeeResponse,
    CancellationRefundResponse,
    DiscountCheckRequest,
    DiscountCreateRequest,
    DiscountListResponse,
    DiscountQuoteResponse,
    DiscountResponse,
    DiscountUpdateRequest,
    PaymentCreateRequest,
    PaymentCreateResponse,
    PaymentListResponse,
    PaymentResponse,
    RefundRequest,
    RefundResponse,
    WalletCreditRequest,
    WalletCurrencyRequest,
    WalletSnapshotResponse,
    WalletTransactionListResponse,
    WalletTransactionResponse,
)

logger = logging.getLogger(__name__)

Operation = Callable[[AsyncSession], Awaitable[Any]]

INTERNAL_ERROR = "internal_error"


def _payment(record: PaymentRecord) -> PaymentResponse:
    return PaymentResponse.model_validate(record)


def _refund(result: RefundResult) -> RefundResponse:
    return RefundResponse(
        payment=_payment(result.payment),
        refunded_amount_cents=result.refunded_amount_cents,
        gateway_refund_ref=result.gateway_refund_ref,
        wallet=WalletSnapshotResponse.model_validate(result.wallet) if result.wallet else None,
    )


class LedgerFacade:
    def __init__(self, container: ApplicationContainer) -> None:
        self.container = container

    async def _run(self, name: str, operation: Operation) -> ApiResult:
        try:
            async with self.container.session() as session:
                data = await operation(session)
        except LedgerError as exc:
            logger.warning("%s rejected: %s (%s)", name, exc.code, exc)
            return ApiResult.fail(exc.code, str(exc), exc.details())
        except Exception:
            logger.exception("%s failed unexpectedly", name)
            return ApiResult.fail(INTERNAL_ERROR, "Internal error")
        if isinstance(data, ApiResult):
            return data
        return ApiResult.ok(data)

    # wallet

    async def get_wallet(self, user_id: str) -> ApiResult:
        async def operation(session: AsyncSession) -> WalletSnapshotResponse:
            snapshot = await self.container.wallet_service(session).ensure_wallet(user_id)
            return WalletSnapshotResponse.model_validate(snapshot)

        return await self._run("get_wallet", operation)

    async def credit_wallet(self, user_id: str, payload: WalletCreditRequest) -> ApiResult:
        async def operation(session: AsyncSession) -> WalletSnapshotResponse:
            snapshot = await self.container.wallet_service(session).credit(
                user_id=user_id,
                amount_cents=payload.amount_cents,
                currency=payload.currency,
                description=payload.description,
                reference=payload.reference,
            )
            return WalletSnapshotResponse.model_validate(snapshot)

        return await self._run("credit_wallet", operation)

    async def set_wallet_currency(self, user_id: str, payload: WalletCurrencyRequest) -> ApiResult:
        async def operation(session: AsyncSession) -> WalletSnapshotResponse:
            snapshot = await self.container.wallet_service(session).set_currency(user_id, payload.currency)
            return WalletSnapshotResponse.model_validate(snapshot)

        return await self._run("set_wallet_currency", operation)

    async def list_transactions(self, user_id: str, limit: int = 50, offset: int = 0) -> ApiResult:
        async def operation(session: AsyncSession) -> WalletTransactionListResponse:
            records = await self.container.wallet_service(session).list_transactions(user_id, limit, offset)
            return WalletTransactionListResponse(
                transactions=[WalletTransactionResponse.model_validate(record) for record in records]
            )

        return await self._run("list_transactions", operation)

    async def add_funds(self, user_id: str, payload: AddFundsRequest) -> ApiResult:
        async def operation(session: AsyncSession) -> PaymentCreateResponse:
            result = await self.container.payment_service(session).add_funds(
                user_id=user_id,
                amount_cents=payload.amount_cents,
                currency=payload.currency,
            )
            return PaymentCreateResponse(payment=_payment(result.payment), client_secret=result.client_secret)

        return await self._run("add_funds", operation)

    # payments

    async def create_payment(self, user_id: str, payload: PaymentCreateRequest) -> ApiResult:
        async def operation(session: AsyncSession) -> Any:
            result = await self.container.payment_service(session).create_payment(
                user_id=user_id,
                amount_cents=payload.amount_cents,
                currency=payload.currency,
                method=payload.method,
                booking_id=payload.booking_id,
                discount_code=payload.discount_code,
                item_type=payload.item_type,
            )
            data = PaymentCreateResponse(payment=_payment(result.payment), client_secret=result.client_secret)
            if result.error is not None:
                error = result.error
                return ApiResult.fail(error.code, str(error), error.details(), data=data)
            return data

        return await self._run("create_payment", operation)

    async def confirm_payment(self, user_id: str, intent_ref: str) -> ApiResult:
        async def operation(session: AsyncSession) -> PaymentResponse:
            record = await self.container.payment_service(session).confirm_payment(
                user_id=user_id, intent_ref=intent_ref
            )
            return _payment(record)

        return await self._run("confirm_payment", operation)

    async def get_payment(self, payment_id: str) -> ApiResult:
        async def operation(session: AsyncSession) -> PaymentResponse:
            return _payment(await self.container.payment_service(session).get_payment(payment_id))

        return await self._run("get_payment", operation)

    async def list_payments(self, user_id: str, limit: int = 50, offset: int = 0) -> ApiResult:
        async def operation(session: AsyncSession) -> PaymentListResponse:
            records = await self.container.payment_service(session).list_payments(user_id, limit, offset)
            return PaymentListResponse(payments=[_payment(record) for record in records])

        return await self._run("list_payments", operation)

    async def refund(self, payment_id: str, payload: Optional[RefundRequest] = None) -> ApiResult:
        payload = payload or RefundRequest()

        async def operation(session: AsyncSession) -> RefundResponse:
            result = await self.container.payment_service(session).refund(
                payment_id,
                reason=payload.reason,
                amount_cents=payload.amount_cents,
            )
            return _refund(result)

        return await self._run("refund", operation)

    async def refund_for_cancellation(
        self,
        payment_id: str,
        item_type: str,
        booking_date: datetime,
        now: Optional[datetime] = None,
    ) -> ApiResult:
        async def operation(session: AsyncSession) -> CancellationRefundResponse:
            result = await self.container.payment_service(session).refund_for_cancellation(
                payment_id,
                item_type=item_type,
                booking_date=booking_date,
                now=now,
            )
            return CancellationRefundResponse(
                fee=CancellationFeeResponse.model_validate(result.fee),
                refund=_refund(result.refund) if result.refund else None,
            )

        return await self._run("refund_for_cancellation", operation)

    async def handle_webhook(self, payload: bytes, signature: str) -> ApiResult:
        async def operation(session: AsyncSession) -> Optional[PaymentResponse]:
            record = await self.container.payment_service(session).handle_webhook(payload, signature)
            return _payment(record) if record else None

        return await self._run("handle_webhook", operation)

    # discounts

    async def validate_discount(self, payload: DiscountCheckRequest) -> ApiResult:
        async def operation(session: AsyncSession) -> DiscountResponse:
            discount = await self.container.discount_service(session).validate(
                payload.code, payload.order_amount_cents, payload.item_type
            )
            return DiscountResponse.model_validate(discount)

        return await self._run("validate_discount", operation)

    async def quote_discount(self, payload: DiscountCheckRequest) -> ApiResult:
        async def operation(session: AsyncSession) -> DiscountQuoteResponse:
            quote = await self.container.discount_service(session).quote(
                payload.code, payload.order_amount_cents, payload.item_type
            )
            return DiscountQuoteResponse(
                code=quote.code,
                original_amount_cents=quote.original_amount_cents,
                discounted_amount_cents=quote.discounted_amount_cents,
                discount_amount_cents=quote.discount_amount_cents,
                applied=quote.applied,
            )

        return await self._run("quote_discount", operation)

    async def create_discount(self, payload: DiscountCreateRequest) -> ApiResult:
        async def operation(session: AsyncSession) -> DiscountResponse:
            discount = await self.container.discount_service(session).create_discount(
                DiscountCreateInput(**payload.model_dump())
            )
            return DiscountResponse.model_validate(discount)

        return await self._run("create_discount", operation)

    async def update_discount(self, discount_id: str, payload: DiscountUpdateRequest) -> ApiResult:
        async def operation(session: AsyncSession) -> DiscountResponse:
            changes = DiscountUpdateInput(**payload.model_dump(exclude_unset=True))
            discount = await self.container.discount_service(session).update_discount(discount_id, changes)
            return DiscountResponse.model_validate(discount)

        return await self._run("update_discount", operation)

    async def deactivate_discount(self, discount_id: str) -> ApiResult:
        async def operation(session: AsyncSession) -> DiscountResponse:
            discount = await self.container.discount_service(session).deactivate_discount(discount_id)
            return DiscountResponse.model_validate(discount)

        return await self._run("deactivate_discount", operation)

    async def list_discounts(self, include_inactive: bool = True) -> ApiResult:
        async def operation(session: AsyncSession) -> DiscountListResponse:
            discounts = await self.container.discount_service(session).list_discounts(include_inactive)
            return DiscountListResponse(discounts=[DiscountResponse.model_validate(item) for item in discounts])

        return await self._run("list_discounts", operation)

    # cancellation

    def calculate_cancellation_fee(
        self,
        payload: CancellationFeeRequest,
        now: Optional[datetime] = None,
    ) -> ApiResult:
        result = calculate_fee(
            payload.item_type,
            payload.booking_date,
            now or utcnow(),
            payload.total_amount_cents,
        )
        return ApiResult.ok(CancellationFeeResponse.model_validate(result))
