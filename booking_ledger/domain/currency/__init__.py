"""Currency domain exports"""

from .converter import CurrencyConverter, from_cents, quantize_amount, to_cents
from .exceptions import CurrencyConversionRateMissing

__all__ = [
    "CurrencyConverter",
    "CurrencyConversionRateMissing",
    "from_cents",
    "quantize_amount",
    "to_cents",
]
