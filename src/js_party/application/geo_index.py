"""GeoIndex — nearest available supplier / courier lookup.

Wraps PartyRepository.find_nearby with the search defaults and the
ordering contract callers rely on: ascending distance, ties broken by party
id. An empty list is a normal outcome; callers decide what "nobody nearby"
means for them.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.js_common.enums import PartyRole
from src.js_party.domain.geo import GeoPoint
from src.js_party.domain.models import NearbyCandidate, SearchFilter
from src.js_party.domain.repository import PartyRepositoryProtocol
from src.js_party.infrastructure.persistence import PartyRepository

logger = logging.getLogger(__name__)


def default_radius_km(role: str) -> float:
    if role == PartyRole.COURIER:
        return settings.COURIER_SEARCH_RADIUS_KM
    return settings.SUPPLIER_SEARCH_RADIUS_KM


class GeoIndex:
    def __init__(self, repo: PartyRepositoryProtocol | None = None) -> None:
        self._repo: PartyRepositoryProtocol = repo or PartyRepository()

    async def find_nearby(
        self,
        db: AsyncSession,
        point: GeoPoint,
        role: str,
        search_filter: SearchFilter | None = None,
        radius_km: float | None = None,
        max_results: int | None = None,
    ) -> list[NearbyCandidate]:
        """Return up to max_results available parties of `role` within radius_km.

        Non-positive or missing radius/max_results fall back to the role's
        defaults (10 km / 5 for suppliers, 5 km / 5 for couriers).
        """
        if role not in (PartyRole.SUPPLIER, PartyRole.COURIER):
            raise ValueError(f"GeoIndex does not search role {role!r}")
        if radius_km is None or radius_km <= 0:
            radius_km = default_radius_km(role)
        if max_results is None or max_results <= 0:
            max_results = settings.SEARCH_MAX_RESULTS
        flt = search_filter or SearchFilter()
        max_active = flt.max_active_orders or settings.SUPPLIER_MAX_ACTIVE_ORDERS

        candidates = await self._repo.find_nearby(
            db,
            point,
            PartyRole(role).value,
            radius_km,
            max_results,
            flt.category,
            flt.exclude_ids,
            max_active,
        )
        # Ties on distance are broken by party id.
        candidates.sort(key=lambda c: (c.distance_km, c.party_id))
        logger.info(
            "GeoIndex %s search at (%.5f, %.5f) r=%.1fkm -> %d hit(s)",
            role,
            point.latitude,
            point.longitude,
            radius_km,
            len(candidates),
        )
        return candidates[:max_results]
