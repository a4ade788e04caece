"""Domain models for discount codes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class DiscountKind(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class ItemScope(str, Enum):
    ALL = "all"
    VENUE = "venue"
    EQUIPMENT = "equipment"
    TUTORIAL = "tutorial"


def normalize_code(code: str) -> str:
    return code.strip().upper()


@dataclass(slots=True)
class Discount:
    """A redeemable discount rule.

    ``value`` is in basis points for percentage discounts (2000 == 20%) and in
    cents for fixed ones.
    """

    id: str
    code: str
    kind: DiscountKind
    value: int
    max_uses: int
    current_uses: int
    expires_at: datetime
    min_order_cents: Optional[int]
    max_discount_cents: Optional[int]
    applicable_items: ItemScope
    is_active: bool
    created_at: Optional[datetime] = None

    def applies_to(self, item_type: Optional[str]) -> bool:
        if self.applicable_items is ItemScope.ALL or item_type is None:
            return True
        return self.applicable_items.value == item_type.lower()


@dataclass(slots=True)
class DiscountCreateInput:
    code: str
    kind: DiscountKind
    value: int
    max_uses: int
    expires_at: datetime
    min_order_cents: Optional[int] = None
    max_discount_cents: Optional[int] = None
    applicable_items: ItemScope = ItemScope.ALL


# Sentinel used to differentiate between "not provided" and explicit None.
UNSET = object()


@dataclass(slots=True)
class DiscountUpdateInput:
    kind: DiscountKind | object = UNSET
    value: int | object = UNSET
    max_uses: int | object = UNSET
    expires_at: datetime | object = UNSET
    min_order_cents: Optional[int] | object = UNSET
    max_discount_cents: Optional[int] | object = UNSET
    applicable_items: ItemScope | object = UNSET
    is_active: bool | object = UNSET


@dataclass(slots=True)
class DiscountQuote:
    code: str
    original_amount_cents: int
    discounted_amount_cents: int
    applied: bool
    discount: Optional[Discount] = None

    @property
    def discount_amount_cents(self) -> int:
        return self.original_amount_cents - self.discounted_amount_cents
