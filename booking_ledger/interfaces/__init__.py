"""Entry points consumed by controllers."""

from .facade import LedgerFacade

__all__ = ["LedgerFacade"]
