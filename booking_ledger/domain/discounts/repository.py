"""Repository protocol for discount codes."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, Sequence

from booking_ledger.db.models import Discount as DiscountModel


class DiscountRepository(Protocol):
    async def get_by_code(self, code: str) -> DiscountModel | None:
        ...

    async def get_by_id(self, discount_id: str) -> DiscountModel | None:
        ...

    async def create(self, **fields: Any) -> DiscountModel:
        ...

    async def update(self, discount_id: str, **fields: Any) -> DiscountModel | None:
        ...

    async def list_discounts(self, include_inactive: bool) -> Sequence[DiscountModel]:
        ...

    async def increment_usage(self, discount_id: str, now: datetime) -> bool:
        """Consume one use if the discount is still active, unexpired and under its cap."""
        ...
