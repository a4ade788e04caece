"""Discount domain exports"""

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
)
from .service import DiscountService, calculate_discounted_amount

__all__ = [
    "UNSET",
    "Discount",
    "DiscountBelowMinimumOrderError",
    "DiscountCodeExistsError",
    "DiscountCreateInput",
    "DiscountError",
    "DiscountExpiredError",
    "DiscountKind",
    "DiscountNotApplicableError",
    "DiscountNotFoundError",
    "DiscountQuote",
    "DiscountService",
    "DiscountUpdateInput",
    "DiscountUsageExhaustedError",
    "ItemScope",
    "calculate_discounted_amount",
]
