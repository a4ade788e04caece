"""Embedding entry point.

A host application wraps its own lifetime in :func:`lifespan` and talks to
the ledger through the yielded :class:`LedgerFacade`::

    async with lifespan() as ledger:
        result = await ledger.get_wallet(user_id)
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from booking_ledger.core.config import Settings, get_settings
from booking_ledger.core.container import ApplicationContainer
from booking_ledger.core.logging import configure_logging
from booking_ledger.domain.payments import BookingCollaborator
from booking_ledger.infrastructure.database import init_db
from booking_ledger.interfaces import LedgerFacade
from booking_ledger.workers.payment_retry import PaymentRetryScheduler


@asynccontextmanager
async def lifespan(
    settings: Optional[Settings] = None,
    *,
    bookings: Optional[BookingCollaborator] = None,
    run_scheduler: bool = True,
) -> AsyncIterator[LedgerFacade]:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    container = ApplicationContainer.build(settings, bookings=bookings)
    if settings.environment in ("development", "test"):
        await init_db(container.engine)

    scheduler: Optional[PaymentRetryScheduler] = None
    if run_scheduler and container.gateway is not None:
        scheduler = PaymentRetryScheduler(container)
        scheduler.start()

    try:
        yield LedgerFacade(container)
    finally:
        if scheduler is not None:
            await scheduler.stop()
        await container.dispose()
