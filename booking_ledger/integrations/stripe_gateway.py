"""Stripe implementation of the payment gateway capability.

The Stripe SDK is synchronous, so every call runs in a worker thread. The
API key is passed per request rather than set on the module, which keeps
several configured gateways (tests, tenants) from stepping on each other.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import stripe

from booking_ledger.core.config import GatewaySettings
from booking_ledger.domain.payments.exceptions import (
    GatewayError,
    GatewayNotConfiguredError,
    WebhookSignatureError,
)
from booking_ledger.domain.payments.gateway import (
    NON_RETRYABLE_CODES,
    GatewayEvent,
    GatewayIntent,
    GatewayRefund,
)

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (stripe.APIConnectionError, stripe.APIError, stripe.RateLimitError)


def classify_error(error: stripe.StripeError) -> GatewayError:
    code = getattr(error, "code", None)
    if code in NON_RETRYABLE_CODES:
        retryable = False
    elif isinstance(error, TRANSIENT_ERRORS):
        retryable = True
    elif isinstance(error, stripe.CardError):
        retryable = True
    else:
        # invalid requests and authentication problems never fix themselves
        retryable = False
    message = getattr(error, "user_message", None) or str(error)
    return GatewayError(message, gateway_code=code, retryable=retryable)


def _field(obj: Any, name: str) -> Any:
    return getattr(obj, name, None)


def _ref(value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    return _field(value, "id")


def to_intent(obj: Any) -> GatewayIntent:
    metadata = _field(obj, "metadata")
    return GatewayIntent(
        id=obj.id,
        status=obj.status,
        amount_cents=int(_field(obj, "amount") or 0),
        currency=(_field(obj, "currency") or "").upper(),
        client_secret=_field(obj, "client_secret"),
        payment_method=_ref(_field(obj, "payment_method")),
        customer=_ref(_field(obj, "customer")),
        metadata={str(key): str(metadata[key]) for key in metadata.keys()} if metadata else {},
    )


class StripeGateway:
    def __init__(self, settings: GatewaySettings) -> None:
        if not settings.is_configured:
            raise GatewayNotConfiguredError()
        self.settings = settings

    async def create_intent(
        self,
        amount_cents: int,
        currency: str,
        metadata: dict[str, str],
        *,
        payment_method: Optional[str] = None,
        customer: Optional[str] = None,
        confirm: bool = False,
        off_session: bool = False,
    ) -> GatewayIntent:
        params: dict[str, Any] = {
            "amount": amount_cents,
            "currency": currency.lower(),
            "metadata": metadata,
        }
        if payment_method:
            params["payment_method"] = payment_method
        else:
            params["automatic_payment_methods"] = {"enabled": True}
        if customer:
            params["customer"] = customer
        if confirm:
            params["confirm"] = True
        if off_session:
            params["off_session"] = True

        intent = await self._call(stripe.PaymentIntent.create, **params)
        logger.info("Created payment intent %s (%s)", intent.id, intent.status)
        return intent

    async def retrieve_intent(self, intent_ref: str) -> GatewayIntent:
        return await self._call(stripe.PaymentIntent.retrieve, intent_ref)

    async def confirm_intent(self, intent_ref: str, payment_method: Optional[str] = None) -> GatewayIntent:
        params: dict[str, Any] = {}
        if payment_method:
            params["payment_method"] = payment_method
        intent = await self._call(stripe.PaymentIntent.confirm, intent_ref, **params)
        logger.info("Confirmed payment intent %s (%s)", intent.id, intent.status)
        return intent

    async def refund(self, intent_ref: str, amount_cents: Optional[int] = None) -> GatewayRefund:
        params: dict[str, Any] = {"payment_intent": intent_ref}
        if amount_cents is not None:
            params["amount"] = amount_cents
        try:
            refund = await asyncio.to_thread(
                stripe.Refund.create,
                api_key=self.settings.secret_key,
                **self._version(),
                **params,
            )
        except stripe.StripeError as exc:
            raise self._translate(exc) from exc
        logger.info("Created refund %s for intent %s", refund.id, intent_ref)
        return GatewayRefund(id=refund.id, status=refund.status)

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: str,
        secret: Optional[str] = None,
    ) -> GatewayEvent:
        secret = secret or self.settings.webhook_secret
        if not secret:
            raise WebhookSignatureError("Webhook secret is not configured")
        try:
            event = stripe.Webhook.construct_event(payload, signature, secret)
        except stripe.SignatureVerificationError as exc:
            logger.warning("Webhook signature verification failed: %s", exc)
            raise WebhookSignatureError("Invalid webhook signature") from exc
        except ValueError as exc:
            logger.warning("Webhook payload could not be parsed: %s", exc)
            raise WebhookSignatureError("Invalid webhook payload") from exc

        return GatewayEvent(id=event.id, type=event.type, intent=to_intent(event.data.object))

    async def _call(self, func: Any, *args: Any, **params: Any) -> GatewayIntent:
        try:
            obj = await asyncio.to_thread(
                func,
                *args,
                api_key=self.settings.secret_key,
                **self._version(),
                **params,
            )
        except stripe.StripeError as exc:
            raise self._translate(exc) from exc
        return to_intent(obj)

    def _version(self) -> dict[str, str]:
        if self.settings.api_version:
            return {"stripe_version": self.settings.api_version}
        return {}

    @staticmethod
    def _translate(exc: stripe.StripeError) -> GatewayError:
        error = classify_error(exc)
        logger.error(
            "Stripe call failed (code=%s retryable=%s): %s",
            error.gateway_code,
            error.retryable,
            exc,
        )
        return error
