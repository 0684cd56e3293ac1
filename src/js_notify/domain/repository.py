"""Outbox repository Protocol."""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.js_notify.domain.models import PendingMessage


class OutboxRepositoryProtocol(Protocol):
    async def enqueue(
        self,
        db: AsyncSession,
        phone: str,
        message: str,
        order_id: str | None,
        error: str,
        delay_seconds: int,
    ) -> int: ...

    async def claim_due(self, db: AsyncSession, limit: int) -> list[PendingMessage]: ...

    async def mark_sent(self, db: AsyncSession, message_id: int) -> None: ...

    async def mark_retry(
        self, db: AsyncSession, message_id: int, error: str, delay_seconds: int
    ) -> None: ...

    async def mark_failed(self, db: AsyncSession, message_id: int, error: str) -> None: ...
