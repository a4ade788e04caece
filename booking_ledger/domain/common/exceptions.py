"""Base error type shared by all ledger domains."""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base class for failures reported to callers as a structured result.

    ``code`` is stable and machine readable; ``details()`` carries any extra
    fields the caller needs to present the failure (shortfall, retry delay).
    """

    code = "ledger_error"

    def details(self) -> dict[str, Any]:
        return {}


class InvalidAmountError(LedgerError):
    """Raised when an amount is zero or negative where a positive one is required."""

    code = "invalid_amount"

    def __init__(self, amount_cents: int) -> None:
        super().__init__(f"Amount must be positive, got {amount_cents} cents")
        self.amount_cents = amount_cents

    def details(self) -> dict[str, Any]:
        return {"amount_cents": self.amount_cents}


class ConcurrentUpdateError(LedgerError):
    """Raised when optimistic concurrency retries are exhausted."""

    code = "concurrent_update"
