"""Capacity guards evaluated inside the assigning transaction.

Suppliers: at most SUPPLIER_MAX_ACTIVE_ORDERS orders in waiting_payment,
paid_held or shipping. The supplier row is locked (SELECT ... FOR UPDATE)
before counting, so two concurrent acceptances by the same supplier are
serialized and cannot both squeeze under the cap.

Couriers: one active delivery. The busy flag is claimed with a conditional
UPDATE; losing that race is a CapacityExceededError.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.js_common.errors import CapacityExceededError, PartyNotFoundError
from src.js_party.domain.repository import PartyRepositoryProtocol
from src.js_party.infrastructure.persistence import PartyRepository


class CapacityGuard:
    def __init__(self, repo: PartyRepositoryProtocol | None = None) -> None:
        self._repo: PartyRepositoryProtocol = repo or PartyRepository()

    async def reserve_supplier(self, db: AsyncSession, supplier_id: str) -> int:
        """Returns the active-order count seen under the lock."""
        active = await self._repo.lock_and_count_active_orders(db, supplier_id)
        if active is None:
            raise PartyNotFoundError(supplier_id)
        if active >= settings.SUPPLIER_MAX_ACTIVE_ORDERS:
            raise CapacityExceededError(
                supplier_id,
                f"{active} active orders (max {settings.SUPPLIER_MAX_ACTIVE_ORDERS})",
            )
        return active

    async def reserve_courier(self, db: AsyncSession, courier_id: str) -> None:
        if not await self._repo.mark_busy(db, courier_id):
            raise CapacityExceededError(courier_id, "courier is already on a delivery")

    async def release_courier(self, db: AsyncSession, courier_id: str | None) -> None:
        if courier_id:
            await self._repo.clear_busy(db, courier_id)
