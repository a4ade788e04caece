"""Simple dependency container for wiring core services."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from booking_ledger.core.config import Settings, get_settings
from booking_ledger.domain.currency import CurrencyConverter
from booking_ledger.domain.discounts import DiscountService
from booking_ledger.domain.payments import (
    BookingCollaborator,
    LoggingBookingCollaborator,
    PaymentGateway,
    PaymentService,
)
from booking_ledger.domain.wallets import WalletService
from booking_ledger.infrastructure.database.session import build_engine, build_session_factory


@dataclass(slots=True)
class ApplicationContainer:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    converter: CurrencyConverter
    gateway: Optional[PaymentGateway] = None
    bookings: BookingCollaborator = field(default_factory=LoggingBookingCollaborator)

    @classmethod
    def build(
        cls,
        settings: Optional[Settings] = None,
        *,
        engine: Optional[AsyncEngine] = None,
        gateway: Optional[PaymentGateway] = None,
        bookings: Optional[BookingCollaborator] = None,
    ) -> "ApplicationContainer":
        settings = settings or get_settings()
        engine = engine or build_engine(settings)
        if gateway is None and settings.gateway.is_configured:
            from booking_ledger.integrations import StripeGateway

            gateway = StripeGateway(settings.gateway)
        return cls(
            settings=settings,
            engine=engine,
            session_factory=build_session_factory(engine),
            converter=CurrencyConverter.from_settings(settings.currency),
            gateway=gateway,
            bookings=bookings or LoggingBookingCollaborator(),
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """One unit of work: committed on success, rolled back on any error."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    def wallet_service(self, session: AsyncSession) -> WalletService:
        return WalletService.with_session(session, self.converter, self.settings)

    def discount_service(self, session: AsyncSession) -> DiscountService:
        return DiscountService.with_session(session)

    def payment_service(self, session: AsyncSession) -> PaymentService:
        return PaymentService.with_session(
            session,
            self.converter,
            gateway=self.gateway,
            bookings=self.bookings,
            settings=self.settings,
        )

    async def dispose(self) -> None:
        await self.engine.dispose()


@lru_cache()
def get_container() -> ApplicationContainer:
    return ApplicationContainer.build(get_settings())


__all__ = ["ApplicationContainer", "get_container"]
