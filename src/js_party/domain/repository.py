"""Repository Protocol — dependency inversion for testability.

Unit tests inject a mock that conforms to this Protocol.
Infrastructure layer provides the real implementation.
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.js_party.domain.geo import GeoPoint
from src.js_party.domain.models import NearbyCandidate, Party


class PartyRepositoryProtocol(Protocol):
    async def create(self, db: AsyncSession, party: Party) -> Party: ...

    async def get_by_id(self, db: AsyncSession, party_id: str) -> Party | None: ...

    async def get_by_phone(self, db: AsyncSession, phone: str) -> Party | None: ...

    async def update_location(
        self, db: AsyncSession, party_id: str, point: GeoPoint, address: str | None
    ) -> Party | None: ...

    async def find_nearby(
        self,
        db: AsyncSession,
        point: GeoPoint,
        role: str,
        radius_km: float,
        limit: int,
        category: str | None,
        exclude_ids: list[str],
        max_active_orders: int,
    ) -> list[NearbyCandidate]: ...

    async def lock_and_count_active_orders(
        self, db: AsyncSession, supplier_id: str
    ) -> int | None: ...

    async def mark_busy(self, db: AsyncSession, courier_id: str) -> bool: ...

    async def clear_busy(self, db: AsyncSession, courier_id: str) -> None: ...
