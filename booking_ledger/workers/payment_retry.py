"""Background recovery of failed gateway payments.

Every ``retry.interval_seconds`` the scheduler looks at gateway payments that
failed within the lookback window and were never retried, claims each one,
and charges the saved payment method again with exponential backoff. Decline
codes in ``NON_RETRYABLE_CODES`` stop after the first attempt.

No database session is held while talking to the gateway: the claim, the
gateway round trips and the outcome are three separate steps. A claim that
is never settled (process killed mid-backoff) expires after
``retry.claim_timeout_seconds`` and the payment becomes eligible again.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from booking_ledger.core.config import RetrySettings
from booking_ledger.core.container import ApplicationContainer
from booking_ledger.domain.payments import (
    GatewayError,
    GatewayIntent,
    GatewayNotConfiguredError,
    PaymentGateway,
    PaymentRecord,
)
from booking_ledger.domain.payments.gateway import (
    INTENT_PROCESSING,
    INTENT_REQUIRES_ACTION,
    INTENT_SUCCEEDED,
)

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class RetryOutcome(str, Enum):
    RECOVERED = "recovered"
    PENDING = "pending"
    STOPPED = "stopped"
    EXHAUSTED = "exhausted"
    SKIPPED = "skipped"


class RetryAborted(Exception):
    """Raised out of a backoff wait when the scheduler is shutting down."""


@dataclass(slots=True)
class RetryPolicy:
    max_retries: int = 3
    initial_delay_seconds: float = 1.0
    backoff_factor: float = 2.0
    max_delay_seconds: float = 60.0

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> "RetryPolicy":
        return cls(
            max_retries=settings.max_retries,
            initial_delay_seconds=settings.initial_delay_seconds,
            backoff_factor=settings.backoff_factor,
            max_delay_seconds=settings.max_delay_seconds,
        )

    def wait(self) -> wait_exponential:
        return wait_exponential(
            multiplier=self.initial_delay_seconds,
            exp_base=self.backoff_factor,
            max=self.max_delay_seconds,
        )


@dataclass(slots=True)
class RetryRunSummary:
    examined: int = 0
    recovered: int = 0
    pending: int = 0
    stopped: int = 0
    exhausted: int = 0
    skipped: int = 0
    errors: int = 0

    def record(self, outcome: RetryOutcome) -> None:
        setattr(self, outcome.value, getattr(self, outcome.value) + 1)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, GatewayError) and exc.retryable


class PaymentRetryScheduler:
    def __init__(
        self,
        container: ApplicationContainer,
        *,
        policy: Optional[RetryPolicy] = None,
        sleep: Optional[SleepFunc] = None,
        batch_size: int = 100,
    ) -> None:
        self.container = container
        self.settings = container.settings.retry
        self.policy = policy or RetryPolicy.from_settings(self.settings)
        self.batch_size = batch_size
        self._sleep_override = sleep
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self.run_forever())

    def request_stop(self) -> None:
        self._stop.set()

    async def stop(self) -> None:
        self.request_stop()
        if self._task is not None:
            await self._task
            self._task = None

    async def run_forever(self) -> None:
        logger.info(
            "Payment retry scheduler started (interval %ss, first run in %ss)",
            self.settings.interval_seconds,
            self.settings.startup_delay_seconds,
        )
        delay = self.settings.startup_delay_seconds
        while not await self._wait_for_stop(delay):
            try:
                await self.run_once()
            except Exception:
                logger.exception("Payment retry run failed")
            delay = self.settings.interval_seconds
        logger.info("Payment retry scheduler stopped")

    async def run_once(self) -> RetryRunSummary:
        summary = RetryRunSummary()
        async with self.container.session() as session:
            service = self.container.payment_service(session)
            candidates = await service.list_retry_candidates(
                lookback=timedelta(hours=self.settings.lookback_hours),
                claim_timeout=timedelta(seconds=self.settings.claim_timeout_seconds),
                limit=self.batch_size,
            )

        for payment in candidates:
            if self._stop.is_set():
                break
            summary.examined += 1
            try:
                outcome = await self.retry_payment(payment)
            except Exception:
                summary.errors += 1
                logger.exception("Retry of payment %s failed unexpectedly", payment.id)
                continue
            summary.record(outcome)

        if summary.examined:
            logger.info("Payment retry run finished: %s", summary)
        return summary

    async def retry_payment(self, payment: PaymentRecord) -> RetryOutcome:
        gateway = self.container.gateway
        if gateway is None:
            raise GatewayNotConfiguredError()

        claim_timeout = timedelta(seconds=self.settings.claim_timeout_seconds)
        async with self.container.session() as session:
            claimed = await self.container.payment_service(session).claim_retry(
                payment.id, claim_timeout=claim_timeout
            )
        if not claimed:
            logger.info("Payment %s already claimed for retry", payment.id)
            return RetryOutcome.SKIPPED

        try:
            original = await gateway.retrieve_intent(payment.gateway_ref)
        except GatewayError as exc:
            await self._release(payment.id)
            logger.warning("Could not load intent %s for payment %s: %s", payment.gateway_ref, payment.id, exc)
            return RetryOutcome.SKIPPED

        if original.status == INTENT_SUCCEEDED:
            async with self.container.session() as session:
                await self.container.payment_service(session).on_gateway_success(payment.gateway_ref)
            logger.info("Payment %s had already succeeded at the gateway", payment.id)
            return RetryOutcome.RECOVERED
        if original.status == INTENT_PROCESSING:
            await self._release(payment.id)
            return RetryOutcome.SKIPPED
        if original.status == INTENT_REQUIRES_ACTION:
            await self._finish(payment.id, INTENT_REQUIRES_ACTION)
            return RetryOutcome.STOPPED
        if not original.payment_method:
            await self._finish(payment.id, "no_saved_payment_method")
            return RetryOutcome.STOPPED

        try:
            intent, attempt = await self._charge(gateway, payment, original)
        except RetryAborted:
            await self._release(payment.id)
            return RetryOutcome.SKIPPED
        except GatewayError as exc:
            await self._finish(payment.id, exc.gateway_code or "retry_exhausted")
            if exc.retryable:
                logger.warning("Retries exhausted for payment %s: %s", payment.id, exc)
                return RetryOutcome.EXHAUSTED
            logger.warning("Payment %s not retryable: %s", payment.id, exc)
            return RetryOutcome.STOPPED

        async with self.container.session() as session:
            service = self.container.payment_service(session)
            if intent.status == INTENT_SUCCEEDED:
                await service.complete_retry(payment.id, intent, attempt)
                return RetryOutcome.RECOVERED
            if intent.status == INTENT_PROCESSING:
                await service.track_retry_intent(payment.id, intent, attempt)
                return RetryOutcome.PENDING
            await service.finish_retry(payment.id, intent.status)
        return RetryOutcome.STOPPED

    async def _charge(
        self,
        gateway: PaymentGateway,
        payment: PaymentRecord,
        original: GatewayIntent,
    ) -> tuple[GatewayIntent, int]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.policy.max_retries),
            wait=self.policy.wait(),
            retry=retry_if_exception(_is_retryable),
            sleep=self._backoff,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                number = attempt.retry_state.attempt_number
                metadata = dict(original.metadata)
                metadata.update(
                    payment_id=payment.id,
                    retry_of=original.id,
                    retry_attempt=str(number),
                )
                logger.info("Retrying payment %s, attempt %s", payment.id, number)
                intent = await gateway.create_intent(
                    payment.amount_cents,
                    payment.currency,
                    metadata,
                    payment_method=original.payment_method,
                    customer=original.customer,
                    confirm=True,
                    off_session=True,
                )
                if intent.status not in (INTENT_SUCCEEDED, INTENT_PROCESSING, INTENT_REQUIRES_ACTION):
                    raise GatewayError(
                        f"Retry intent {intent.id} ended as {intent.status}",
                        gateway_code=intent.status,
                        retryable=True,
                    )
        return intent, number

    async def _backoff(self, seconds: float) -> None:
        if self._sleep_override is not None:
            await self._sleep_override(seconds)
        else:
            await self._wait_for_stop(seconds)
        if self._stop.is_set():
            raise RetryAborted()

    async def _wait_for_stop(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; True when a stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def _finish(self, payment_id: str, reason: str) -> None:
        async with self.container.session() as session:
            await self.container.payment_service(session).finish_retry(payment_id, reason)

    async def _release(self, payment_id: str) -> None:
        async with self.container.session() as session:
            await self.container.payment_service(session).release_retry(payment_id)


async def run_worker(container: Optional[ApplicationContainer] = None, *, once: bool = False) -> None:
    from booking_ledger.core.logging import configure_logging

    container = container or ApplicationContainer.build()
    configure_logging(container.settings.log_level)
    scheduler = PaymentRetryScheduler(container)

    try:
        if once:
            await scheduler.run_once()
            return

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, scheduler.request_stop)
        await scheduler.run_forever()
    finally:
        await container.dispose()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Failed payment retry worker")
    parser.add_argument("--once", action="store_true", help="Run a single retry pass and exit")
    args = parser.parse_args()

    asyncio.run(run_worker(once=args.once))
