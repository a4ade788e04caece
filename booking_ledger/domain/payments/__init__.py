"""Payment domain exports"""

from .exceptions import (
    AlreadyRefundedError,
    CancellationNotAllowedError,
    GatewayError,
    GatewayNotConfiguredError,
    PaymentError,
    PaymentNotFoundError,
    PaymentNotRefundableError,
    UnsupportedPaymentMethodError,
    WebhookSignatureError,
)
from .gateway import (
    BookingCollaborator,
    GatewayEvent,
    GatewayIntent,
    GatewayRefund,
    LoggingBookingCollaborator,
    PaymentGateway,
)
from .models import (
    CancellationRefund,
    PaymentMethod,
    PaymentPurpose,
    PaymentRecord,
    PaymentResult,
    PaymentStatus,
    RefundResult,
)
from .service import PaymentService

__all__ = [
    "AlreadyRefundedError",
    "BookingCollaborator",
    "CancellationNotAllowedError",
    "CancellationRefund",
    "GatewayError",
    "GatewayEvent",
    "GatewayIntent",
    "GatewayNotConfiguredError",
    "GatewayRefund",
    "LoggingBookingCollaborator",
    "PaymentError",
    "PaymentGateway",
    "PaymentMethod",
    "PaymentNotFoundError",
    "PaymentNotRefundableError",
    "PaymentPurpose",
    "PaymentRecord",
    "PaymentResult",
    "PaymentService",
    "PaymentStatus",
    "RefundResult",
    "UnsupportedPaymentMethodError",
    "WebhookSignatureError",
]
