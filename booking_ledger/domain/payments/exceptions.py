"""Payment domain specific exceptions."""

from __future__ import annotations

from typing import Any, Optional

from booking_ledger.domain.common.exceptions import LedgerError

from .gateway import NON_RETRYABLE_CODES


class PaymentError(LedgerError):
    """Base class for payment orchestration errors."""

    code = "payment_error"


class PaymentNotFoundError(PaymentError):
    code = "payment_not_found"

    def __init__(self, reference: str) -> None:
        super().__init__(f"Payment not found: {reference}")
        self.reference = reference


class AlreadyRefundedError(PaymentError):
    code = "already_refunded"

    def __init__(self, payment_id: str) -> None:
        super().__init__(f"Payment {payment_id} has already been refunded")
        self.payment_id = payment_id


class PaymentNotRefundableError(PaymentError):
    code = "payment_not_refundable"

    def __init__(self, payment_id: str, status: str) -> None:
        super().__init__(f"Payment {payment_id} cannot be refunded from status {status}")
        self.payment_id = payment_id
        self.status = status

    def details(self) -> dict[str, Any]:
        return {"status": self.status}


class CancellationNotAllowedError(PaymentError):
    code = "cancellation_not_allowed"

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class UnsupportedPaymentMethodError(PaymentError):
    code = "unsupported_payment_method"

    def __init__(self, method: str) -> None:
        super().__init__(f"Unsupported payment method: {method}")
        self.method = method


class GatewayNotConfiguredError(PaymentError):
    code = "gateway_not_configured"

    def __init__(self) -> None:
        super().__init__("Payment gateway is not configured")


class GatewayError(PaymentError):
    """A failed call to the external gateway.

    ``gateway_code`` is the gateway's own error code (``card_declined`` and
    friends); ``retryable`` says whether another attempt could succeed.
    """

    code = "gateway_error"

    def __init__(
        self,
        message: str,
        *,
        gateway_code: Optional[str] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.gateway_code = gateway_code
        if retryable is None:
            retryable = gateway_code not in NON_RETRYABLE_CODES
        self.retryable = retryable

    def details(self) -> dict[str, Any]:
        return {"gateway_code": self.gateway_code, "retryable": self.retryable}


class WebhookSignatureError(PaymentError):
    code = "webhook_signature_invalid"
