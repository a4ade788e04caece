"""Wallet domain specific exceptions."""

from __future__ import annotations

from typing import Any

from booking_ledger.domain.common.exceptions import LedgerError


class WalletError(LedgerError):
    """Base class for wallet related domain errors."""

    code = "wallet_error"


class WalletNotFoundError(WalletError):
    """Raised when an operation requires an existing wallet."""

    code = "wallet_not_found"

    def __init__(self, user_id: str) -> None:
        super().__init__(f"Wallet not found for user {user_id}")
        self.user_id = user_id


class InsufficientFundsError(WalletError):
    """Raised when a debit exceeds the available balance."""

    code = "insufficient_funds"

    def __init__(self, *, balance_cents: int, required_cents: int, currency: str) -> None:
        super().__init__(
            f"Insufficient wallet balance: {balance_cents} {currency} cents available, "
            f"{required_cents} required"
        )
        self.balance_cents = balance_cents
        self.required_cents = required_cents
        self.currency = currency

    @property
    def shortfall_cents(self) -> int:
        return self.required_cents - self.balance_cents

    def details(self) -> dict[str, Any]:
        return {
            "balance_cents": self.balance_cents,
            "required_cents": self.required_cents,
            "shortfall_cents": self.shortfall_cents,
            "currency": self.currency,
        }


class UnsupportedCurrencyError(WalletError):
    """Raised when a wallet is asked to hold a currency without a configured rate."""

    code = "unsupported_currency"

    def __init__(self, currency: str) -> None:
        super().__init__(f"Unsupported currency: {currency}")
        self.currency = currency

    def details(self) -> dict[str, Any]:
        return {"currency": self.currency}


class CurrencyChangeTooSoonError(WalletError):
    """Raised when the wallet currency is switched again inside the cool-down window."""

    code = "currency_change_too_soon"

    def __init__(self, retry_after_seconds: int) -> None:
        super().__init__(f"Wallet currency was changed recently, retry in {retry_after_seconds}s")
        self.retry_after_seconds = retry_after_seconds

    def details(self) -> dict[str, Any]:
        return {"retry_after_seconds": self.retry_after_seconds}
