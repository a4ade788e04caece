"""Adapters for external services."""

from .stripe_gateway import StripeGateway

__all__ = ["StripeGateway"]
