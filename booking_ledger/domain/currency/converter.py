"""Fixed-rate currency conversion.

Rates are expressed as units of a currency per one unit of the reference
currency, so any pair converts through the reference without a separate
table entry. Results are quantized to two decimal places, half up.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping

from booking_ledger.core.config import CurrencySettings

from .exceptions import CurrencyConversionRateMissing

CENT = Decimal("0.01")


def quantize_amount(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(amount: Decimal) -> int:
    return int(quantize_amount(amount) * 100)


def from_cents(amount_cents: int) -> Decimal:
    return Decimal(amount_cents) / 100


class CurrencyConverter:
    def __init__(self, rates: Mapping[str, Decimal], reference_currency: str = "USD") -> None:
        self._rates = {code.upper(): Decimal(rate) for code, rate in rates.items()}
        self.reference_currency = reference_currency.upper()

    @classmethod
    def from_settings(cls, settings: CurrencySettings) -> "CurrencyConverter":
        return cls(settings.rates, settings.reference_currency)

    @property
    def supported_currencies(self) -> frozenset[str]:
        return frozenset(self._rates)

    def supports(self, currency: str) -> bool:
        return currency.upper() in self._rates

    def convert(self, amount: Decimal, source: str, target: str) -> Decimal:
        source, target = source.upper(), target.upper()
        if source == target:
            return amount
        source_rate = self._rates.get(source)
        target_rate = self._rates.get(target)
        if source_rate is None or target_rate is None:
            raise CurrencyConversionRateMissing(source, target)
        return quantize_amount(amount * target_rate / source_rate)

    def convert_cents(self, amount_cents: int, source: str, target: str) -> int:
        if source.upper() == target.upper():
            return amount_cents
        return to_cents(self.convert(from_cents(amount_cents), source, target))
