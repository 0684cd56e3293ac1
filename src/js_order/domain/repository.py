"""OrderRepository Protocol — interface contract for persistence layer."""

from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.js_order.domain.models import Order


class OrderRepositoryProtocol(Protocol):
    async def insert(self, db: AsyncSession, order: Order) -> None: ...

    async def get_by_id(self, db: AsyncSession, order_id: str) -> Order | None: ...

    async def get_for_update(self, db: AsyncSession, order_id: str) -> Order | None: ...

    async def compare_and_set(
        self,
        db: AsyncSession,
        order_id: str,
        expected: str,
        target: str,
        changes: dict[str, Any],
    ) -> Order | None: ...

    async def update_fields(
        self,
        db: AsyncSession,
        order_id: str,
        changes: dict[str, Any],
        required_statuses: list[str],
    ) -> Order | None: ...

    async def record_transition(
        self,
        db: AsyncSession,
        order_id: str,
        from_status: str,
        to_status: str,
        reason: str | None,
    ) -> None: ...

    async def find_by_ref(
        self, db: AsyncSession, ref: str, party_id: str
    ) -> list[Order]: ...

    async def list_by_party(
        self,
        db: AsyncSession,
        party_id: str,
        statuses: list[str] | None,
        limit: int,
        cursor: str | None,
    ) -> list[Order]: ...
