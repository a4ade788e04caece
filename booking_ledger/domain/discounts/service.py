"""Discount code validation, redemption and administration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields as dataclass_fields
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from booking_ledger.core.clock import as_utc, utcnow
from booking_ledger.db.models import Discount as DiscountModel
from booking_ledger.domain.common.exceptions import InvalidAmountError
from booking_ledger.infrastructure.database.repositories.discount_repository import SqlDiscountRepository

from .exceptions import (
    DiscountBelowMinimumOrderError,
    DiscountCodeExistsError,
    DiscountError,
    DiscountExpiredError,
    DiscountNotApplicableError,
    DiscountNotFoundError,
    DiscountUsageExhaustedError,
)
from .models import (
    UNSET,
    Discount,
    DiscountCreateInput,
    DiscountKind,
    DiscountQuote,
    DiscountUpdateInput,
    ItemScope,
    normalize_code,
)
from .repository import DiscountRepository

logger = logging.getLogger(__name__)

BASIS_POINTS = Decimal(10000)


def calculate_discounted_amount(discount: Discount, order_amount_cents: int) -> int:
    """Return the order amount after ``discount``, never below zero."""
    if discount.kind is DiscountKind.PERCENTAGE:
        reduction = int(
            (Decimal(order_amount_cents) * discount.value / BASIS_POINTS).quantize(
                Decimal(1), rounding=ROUND_HALF_UP
            )
        )
        if discount.max_discount_cents is not None:
            reduction = min(reduction, discount.max_discount_cents)
    else:
        reduction = discount.value
    return max(0, order_amount_cents - reduction)


@dataclass(slots=True)
class DiscountService:
    repository: DiscountRepository
    clock: Callable[[], datetime] = utcnow

    @classmethod
    def with_session(cls, session: AsyncSession) -> "DiscountService":
        return cls(SqlDiscountRepository(session))

    async def validate(
        self,
        code: str,
        order_amount_cents: int,
        item_type: Optional[str] = None,
    ) -> Discount:
        code = normalize_code(code)
        model = await self.repository.get_by_code(code)
        if model is None or not model.is_active:
            raise DiscountNotFoundError(code)
        discount = self._to_domain(model)
        self._check(discount, order_amount_cents, item_type)
        return discount

    async def apply(self, discount: Discount, order_amount_cents: int) -> int:
        """Consume one use of ``discount`` and return the discounted amount.

        The usage counter is only bumped by a conditional update, so when
        several requests race for the last use exactly one of them wins.
        """
        consumed = await self.repository.increment_usage(discount.id, self.clock())
        if not consumed:
            logger.warning("Discount %s lost redemption race or became unusable", discount.code)
            raise DiscountUsageExhaustedError(discount.code)
        discounted = calculate_discounted_amount(discount, order_amount_cents)
        logger.info(
            "Applied discount %s: %s -> %s cents",
            discount.code,
            order_amount_cents,
            discounted,
        )
        return discounted

    async def redeem(
        self,
        code: str,
        order_amount_cents: int,
        item_type: Optional[str] = None,
    ) -> DiscountQuote:
        discount = await self.validate(code, order_amount_cents, item_type)
        discounted = await self.apply(discount, order_amount_cents)
        return DiscountQuote(
            code=discount.code,
            original_amount_cents=order_amount_cents,
            discounted_amount_cents=discounted,
            applied=True,
            discount=discount,
        )

    async def quote(
        self,
        code: str,
        order_amount_cents: int,
        item_type: Optional[str] = None,
    ) -> DiscountQuote:
        """Price an order without consuming the code.

        An unusable code quotes the undiscounted amount instead of failing.
        """
        try:
            discount = await self.validate(code, order_amount_cents, item_type)
        except DiscountError as exc:
            logger.info("Quote for code %s falls back to full price: %s", code, exc.code)
            return DiscountQuote(
                code=normalize_code(code),
                original_amount_cents=order_amount_cents,
                discounted_amount_cents=order_amount_cents,
                applied=False,
            )
        return DiscountQuote(
            code=discount.code,
            original_amount_cents=order_amount_cents,
            discounted_amount_cents=calculate_discounted_amount(discount, order_amount_cents),
            applied=True,
            discount=discount,
        )

    async def create_discount(self, payload: DiscountCreateInput) -> Discount:
        code = normalize_code(payload.code)
        if await self.repository.get_by_code(code) is not None:
            raise DiscountCodeExistsError(code)
        self._check_value(payload.kind, payload.value)
        if payload.max_uses <= 0:
            raise InvalidAmountError(payload.max_uses)

        model = await self.repository.create(
            code=code,
            kind=payload.kind.value,
            value=payload.value,
            max_uses=payload.max_uses,
            current_uses=0,
            expires_at=as_utc(payload.expires_at),
            min_order_cents=payload.min_order_cents,
            max_discount_cents=payload.max_discount_cents,
            applicable_items=payload.applicable_items.value,
            is_active=True,
        )
        logger.info("Created discount %s (%s %s)", code, payload.kind.value, payload.value)
        return self._to_domain(model)

    async def update_discount(self, discount_id: str, payload: DiscountUpdateInput) -> Discount:
        current = await self.repository.get_by_id(discount_id)
        if current is None:
            raise DiscountNotFoundError(discount_id)

        fields: dict[str, Any] = {}
        for item in dataclass_fields(payload):
            name = item.name
            value = getattr(payload, name)
            if value is UNSET:
                continue
            if isinstance(value, (DiscountKind, ItemScope)):
                value = value.value
            elif isinstance(value, datetime):
                value = as_utc(value)
            fields[name] = value

        kind = DiscountKind(fields.get("kind", current.kind))
        self._check_value(kind, fields.get("value", current.value))

        model = await self.repository.update(discount_id, **fields)
        if model is None:
            raise DiscountNotFoundError(discount_id)
        logger.info("Updated discount %s: %s", model.code, sorted(fields))
        return self._to_domain(model)

    async def deactivate_discount(self, discount_id: str) -> Discount:
        model = await self.repository.update(discount_id, is_active=False)
        if model is None:
            raise DiscountNotFoundError(discount_id)
        logger.info("Deactivated discount %s", model.code)
        return self._to_domain(model)

    async def list_discounts(self, include_inactive: bool = True) -> list[Discount]:
        rows = await self.repository.list_discounts(include_inactive)
        return [self._to_domain(row) for row in rows]

    def _check(self, discount: Discount, order_amount_cents: int, item_type: Optional[str]) -> None:
        if discount.expires_at <= self.clock():
            raise DiscountExpiredError(discount.code)
        if discount.current_uses >= discount.max_uses:
            raise DiscountUsageExhaustedError(discount.code)
        if discount.min_order_cents is not None and order_amount_cents < discount.min_order_cents:
            raise DiscountBelowMinimumOrderError(discount.code, discount.min_order_cents)
        if not discount.applies_to(item_type):
            raise DiscountNotApplicableError(discount.code, item_type or "")

    @staticmethod
    def _check_value(kind: DiscountKind, value: int) -> None:
        if value <= 0 or (kind is DiscountKind.PERCENTAGE and value > BASIS_POINTS):
            raise InvalidAmountError(value)

    @staticmethod
    def _to_domain(model: DiscountModel) -> Discount:
        return Discount(
            id=model.id,
            code=model.code,
            kind=DiscountKind(model.kind),
            value=model.value,
            max_uses=model.max_uses,
            current_uses=model.current_uses,
            expires_at=as_utc(model.expires_at),
            min_order_cents=model.min_order_cents,
            max_discount_cents=model.max_discount_cents,
            applicable_items=ItemScope(model.applicable_items),
            is_active=model.is_active,
            created_at=as_utc(model.created_at),
        )
