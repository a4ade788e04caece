"""Shared abstractions used across domain modules."""

from .exceptions import ConcurrentUpdateError, InvalidAmountError, LedgerError

__all__ = ["ConcurrentUpdateError", "InvalidAmountError", "LedgerError"]
