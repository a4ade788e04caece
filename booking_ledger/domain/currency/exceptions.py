"""Currency domain specific exceptions."""

from __future__ import annotations

from typing import Any

from booking_ledger.domain.common.exceptions import LedgerError


class CurrencyConversionRateMissing(LedgerError):
    """Raised when no rate is configured for one side of a conversion."""

    code = "currency_rate_missing"

    def __init__(self, source: str, target: str) -> None:
        super().__init__(f"No exchange rate configured for {source} -> {target}")
        self.source = source
        self.target = target

    def details(self) -> dict[str, Any]:
        return {"from": self.source, "to": self.target}
