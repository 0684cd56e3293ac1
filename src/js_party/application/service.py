"""PartyApplicationService — directory maintenance for buyers, suppliers, couriers.

Registration creates the party row and its wallet in one transaction.
"""

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from src.js_common.errors import PartyNotFoundError, PhoneExistsError
from src.js_common.phone import mask_phone, normalize_phone
from src.js_party.application.schemas import (
    CreatePartyRequest,
    PartyResponse,
    UpdateLocationRequest,
)
from src.js_party.domain.geo import GeoPoint
from src.js_party.domain.models import Party
from src.js_party.domain.repository import PartyRepositoryProtocol
from src.js_party.infrastructure.persistence import PartyRepository
from src.js_wallet.domain.repository import WalletRepositoryProtocol
from src.js_wallet.infrastructure.persistence import WalletRepository

logger = logging.getLogger(__name__)


class PartyApplicationService:
    def __init__(
        self,
        repo: PartyRepositoryProtocol | None = None,
        wallets: WalletRepositoryProtocol | None = None,
    ) -> None:
        self._repo: PartyRepositoryProtocol = repo or PartyRepository()
        self._wallets: WalletRepositoryProtocol = wallets or WalletRepository()

    async def register(self, db: AsyncSession, req: CreatePartyRequest) -> PartyResponse:
        phone = normalize_phone(req.phone)
        try:
            if await self._repo.get_by_phone(db, phone) is not None:
                raise PhoneExistsError(phone)
            party = await self._repo.create(
                db,
                Party(
                    id=str(uuid.uuid4()),
                    phone=phone,
                    name=req.name,
                    role=req.role.value,
                    latitude=req.latitude,
                    longitude=req.longitude,
                    address=req.address,
                    business_name=req.business_name,
                    categories=[c.strip().lower() for c in req.categories if c.strip()],
                    vehicle=req.vehicle.value if req.vehicle else None,
                ),
            )
            await self._wallets.create_wallet(db, party.id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Registered %s %s (%s)", party.role, party.id, mask_phone(phone))
        return PartyResponse.from_domain(party)

    async def get_party(self, db: AsyncSession, party_id: str) -> PartyResponse:
        party = await self._repo.get_by_id(db, party_id)
        if party is None:
            raise PartyNotFoundError(party_id)
        return PartyResponse.from_domain(party)

    async def update_location(
        self, db: AsyncSession, party_id: str, req: UpdateLocationRequest
    ) -> PartyResponse:
        point = GeoPoint(req.latitude, req.longitude)
        try:
            party = await self._repo.update_location(db, party_id, point, req.address)
            if party is None:
                raise PartyNotFoundError(party_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return PartyResponse.from_domain(party)
