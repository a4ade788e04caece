"""Cancellation policy exports"""

from .policy import CancellationFeeResult, calculate_fee

__all__ = [
    "CancellationFeeResult",
    "calculate_fee",
]
