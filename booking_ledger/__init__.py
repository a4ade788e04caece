"""Payment and wallet ledger for the booking marketplace."""

__version__ = "0.1.0"
