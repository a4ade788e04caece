"""Wallet domain exports"""

from .exceptions import (
    CurrencyChangeTooSoonError,
    InsufficientFundsError,
    UnsupportedCurrencyError,
    WalletError,
    WalletNotFoundError,
)
from .models import TransactionDirection, WalletSnapshot, WalletTransactionRecord
from .service import WalletService

__all__ = [
    "CurrencyChangeTooSoonError",
    "InsufficientFundsError",
    "TransactionDirection",
    "UnsupportedCurrencyError",
    "WalletError",
    "WalletNotFoundError",
    "WalletSnapshot",
    "WalletTransactionRecord",
    "WalletService",
]
