"""Background workers."""

from .payment_retry import (
    PaymentRetryScheduler,
    RetryAborted,
    RetryOutcome,
    RetryPolicy,
    RetryRunSummary,
    run_worker,
)

__all__ = [
    "PaymentRetryScheduler",
    "RetryAborted",
    "RetryOutcome",
    "RetryPolicy",
    "RetryRunSummary",
    "run_worker",
]
