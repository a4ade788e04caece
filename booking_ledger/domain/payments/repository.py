"""Repository protocol for payment records."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Protocol, Sequence

from booking_ledger.db.models import Payment as PaymentModel


class PaymentRepository(Protocol):
    async def create(self, **fields: Any) -> PaymentModel:
        ...

    async def get(self, payment_id: str) -> PaymentModel | None:
        ...

    async def get_by_gateway_ref(self, gateway_ref: str) -> PaymentModel | None:
        ...

    async def list_for_user(self, user_id: str, limit: int, offset: int) -> Sequence[PaymentModel]:
        ...

    async def transition(
        self,
        payment_id: str,
        *,
        from_statuses: Iterable[str],
        to_status: str,
        **fields: Any,
    ) -> PaymentModel | None:
        """Move a payment to ``to_status`` only if it is currently in ``from_statuses``."""
        ...

    async def transition_by_gateway_ref(
        self,
        gateway_ref: str,
        *,
        from_statuses: Iterable[str],
        to_status: str,
        **fields: Any,
    ) -> PaymentModel | None:
        ...

    async def update_fields(self, payment_id: str, **fields: Any) -> PaymentModel | None:
        ...

    async def list_retry_candidates(
        self,
        *,
        updated_since: datetime,
        claim_expired_before: datetime,
        limit: int,
    ) -> Sequence[PaymentModel]:
        ...

    async def claim_for_retry(self, payment_id: str, *, now: datetime, claim_expired_before: datetime) -> bool:
        ...
