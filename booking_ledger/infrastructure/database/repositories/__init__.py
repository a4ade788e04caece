"""SQLAlchemy-backed repository implementations."""

from .discount_repository import SqlDiscountRepository
from .payment_repository import SqlPaymentRepository
from .wallet_repository import SqlWalletRepository

__all__ = [
    "SqlDiscountRepository",
    "SqlPaymentRepository",
    "SqlWalletRepository",
]
