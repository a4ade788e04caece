"""Discount domain specific exceptions."""

from __future__ import annotations

from typing import Any

from booking_ledger.domain.common.exceptions import LedgerError


class DiscountError(LedgerError):
    """Base class for discount validation and redemption errors."""

    code = "discount_error"

    def __init__(self, discount_code: str, message: str) -> None:
        super().__init__(message)
        self.discount_code = discount_code

    def details(self) -> dict[str, Any]:
        return {"discount_code": self.discount_code}


class DiscountNotFoundError(DiscountError):
    code = "discount_not_found"

    def __init__(self, discount_code: str) -> None:
        super().__init__(discount_code, f"Discount code {discount_code} does not exist or is inactive")


class DiscountExpiredError(DiscountError):
    code = "discount_expired"

    def __init__(self, discount_code: str) -> None:
        super().__init__(discount_code, f"Discount code {discount_code} has expired")


class DiscountUsageExhaustedError(DiscountError):
    code = "discount_usage_exhausted"

    def __init__(self, discount_code: str) -> None:
        super().__init__(discount_code, f"Discount code {discount_code} has reached its usage limit")


class DiscountBelowMinimumOrderError(DiscountError):
    code = "discount_below_minimum_order"

    def __init__(self, discount_code: str, min_order_cents: int) -> None:
        super().__init__(
            discount_code,
            f"Discount code {discount_code} requires an order of at least {min_order_cents} cents",
        )
        self.min_order_cents = min_order_cents

    def details(self) -> dict[str, Any]:
        return {"discount_code": self.discount_code, "min_order_cents": self.min_order_cents}


class DiscountNotApplicableError(DiscountError):
    code = "discount_not_applicable"

    def __init__(self, discount_code: str, item_type: str) -> None:
        super().__init__(discount_code, f"Discount code {discount_code} does not apply to {item_type}")
        self.item_type = item_type

    def details(self) -> dict[str, Any]:
        return {"discount_code": self.discount_code, "item_type": self.item_type}


class DiscountCodeExistsError(DiscountError):
    code = "discount_code_exists"

    def __init__(self, discount_code: str) -> None:
        super().__init__(discount_code, f"Discount code {discount_code} already exists")
