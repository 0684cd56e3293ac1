"""PartyRepository — raw SQL over PostGIS geography columns.

`location` is GEOGRAPHY(Point, 4326); distances come back in metres and are
converted to km in SQL. Busy-flag and capacity operations are atomic at the
SQL level and run inside the caller's transaction.
"""

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.js_common.enums import OrderStatus, PartyRole
from src.js_party.domain.geo import GeoPoint
from src.js_party.domain.models import NearbyCandidate, Party

# Statuses that count against a supplier's concurrent-order cap.
ACTIVE_SUPPLIER_STATUSES: tuple[str, ...] = (
    OrderStatus.WAITING_PAYMENT.value,
    OrderStatus.PAID_HELD.value,
    OrderStatus.SHIPPING.value,
)
_ACTIVE_CSV = ",".join(ACTIVE_SUPPLIER_STATUSES)

_POINT = "ST_SetSRID(ST_MakePoint(:lng, :lat), 4326)::geography"

_SELECT_COLUMNS = """
    id, phone, name, role,
    ST_Y(location::geometry) AS latitude,
    ST_X(location::geometry) AS longitude,
    address, business_name, categories, vehicle,
    is_busy, is_active, created_at, updated_at
"""

_INSERT_PARTY_SQL = text(f"""
    INSERT INTO parties (id, phone, name, role, location, address,
                         business_name, categories, vehicle)
    VALUES (:id, :phone, :name, :role,
            CASE WHEN CAST(:lat AS DOUBLE PRECISION) IS NULL THEN NULL
                 ELSE ST_SetSRID(ST_MakePoint(CAST(:lng AS DOUBLE PRECISION),
                                              CAST(:lat AS DOUBLE PRECISION)), 4326)::geography
            END,
            :address, :business_name, CAST(:categories AS TEXT[]), :vehicle)
    RETURNING {_SELECT_COLUMNS}
""")

_GET_BY_ID_SQL = text(f"SELECT {_SELECT_COLUMNS} FROM parties WHERE id = :id")

_GET_BY_PHONE_SQL = text(f"SELECT {_SELECT_COLUMNS} FROM parties WHERE phone = :phone")

_UPDATE_LOCATION_SQL = text(f"""
    UPDATE parties
    SET location = {_POINT},
        address = COALESCE(:address, address),
        updated_at = NOW()
    WHERE id = :id
    RETURNING {_SELECT_COLUMNS}
""")

_ACTIVE_ORDERS_SUBQUERY = f"""
    (SELECT COUNT(*) FROM orders o
     WHERE o.supplier_id = p.id
       AND o.status = ANY(string_to_array('{_ACTIVE_CSV}', ',')))
"""

_FIND_SUPPLIERS_SQL = text(f"""
    SELECT p.id, p.phone, p.name, p.business_name, p.address, p.categories,
           ST_Distance(p.location, {_POINT}) / 1000.0 AS distance_km,
           {_ACTIVE_ORDERS_SUBQUERY} AS active_orders
    FROM parties p
    WHERE p.role = 'supplier'
      AND p.is_active
      AND p.location IS NOT NULL
      AND ST_DWithin(p.location, {_POINT}, :radius_m)
      AND (CAST(:category AS TEXT) IS NULL OR CAST(:category AS TEXT) = ANY(p.categories))
      AND NOT (p.id = ANY(CAST(:exclude_ids AS TEXT[])))
      AND {_ACTIVE_ORDERS_SUBQUERY} < :max_active
    ORDER BY distance_km ASC, p.id ASC
    LIMIT :limit
""")

_FIND_COURIERS_SQL = text(f"""
    SELECT p.id, p.phone, p.name, p.vehicle, p.address,
           ST_Distance(p.location, {_POINT}) / 1000.0 AS distance_km
    FROM parties p
    WHERE p.role = 'courier'
      AND p.is_active
      AND NOT p.is_busy
      AND p.location IS NOT NULL
      AND ST_DWithin(p.location, {_POINT}, :radius_m)
      AND NOT (p.id = ANY(CAST(:exclude_ids AS TEXT[])))
    ORDER BY distance_km ASC, p.id ASC
    LIMIT :limit
""")

_LOCK_PARTY_SQL = text("SELECT id FROM parties WHERE id = :id FOR UPDATE")

_COUNT_ACTIVE_ORDERS_SQL = text(f"""
    SELECT COUNT(*) FROM orders
    WHERE supplier_id = :id
      AND status = ANY(string_to_array('{_ACTIVE_CSV}', ','))
""")

_MARK_BUSY_SQL = text("""
    UPDATE parties
    SET is_busy = TRUE, updated_at = NOW()
    WHERE id = :id AND role = 'courier' AND is_busy = FALSE
    RETURNING id
""")

_CLEAR_BUSY_SQL = text("""
    UPDATE parties
    SET is_busy = FALSE, updated_at = NOW()
    WHERE id = :id AND is_busy = TRUE
""")


def _row_to_party(row: Any) -> Party:
    return Party(
        id=row.id,
        phone=row.phone,
        name=row.name,
        role=row.role,
        latitude=row.latitude,
        longitude=row.longitude,
        address=row.address,
        business_name=row.business_name,
        categories=list(row.categories or []),
        vehicle=row.vehicle,
        is_busy=row.is_busy,
        is_active=row.is_active,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class PartyRepository:
    """Concrete implementation of PartyRepositoryProtocol using raw SQL."""

    async def create(self, db: AsyncSession, party: Party) -> Party:
        result = await db.execute(
            _INSERT_PARTY_SQL,
            {
                "id": party.id,
                "phone": party.phone,
                "name": party.name,
                "role": party.role,
                "lat": party.latitude,
                "lng": party.longitude,
                "address": party.address,
                "business_name": party.business_name,
                "categories": party.categories,
                "vehicle": party.vehicle,
            },
        )
        return _row_to_party(result.fetchone())

    async def get_by_id(self, db: AsyncSession, party_id: str) -> Party | None:
        result = await db.execute(_GET_BY_ID_SQL, {"id": party_id})
        row = result.fetchone()
        return _row_to_party(row) if row else None

    async def get_by_phone(self, db: AsyncSession, phone: str) -> Party | None:
        result = await db.execute(_GET_BY_PHONE_SQL, {"phone": phone})
        row = result.fetchone()
        return _row_to_party(row) if row else None

    async def update_location(
        self, db: AsyncSession, party_id: str, point: GeoPoint, address: str | None
    ) -> Party | None:
        result = await db.execute(
            _UPDATE_LOCATION_SQL,
            {
                "id": party_id,
                "lat": point.latitude,
                "lng": point.longitude,
                "address": address,
            },
        )
        row = result.fetchone()
        return _row_to_party(row) if row else None

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
    ) -> list[NearbyCandidate]:
        params: dict[str, Any] = {
            "lat": point.latitude,
            "lng": point.longitude,
            "radius_m": radius_km * 1000.0,
            "limit": limit,
            "exclude_ids": list(exclude_ids),
        }
        if role == PartyRole.SUPPLIER:
            params.update(category=category, max_active=max_active_orders)
            rows = (await db.execute(_FIND_SUPPLIERS_SQL, params)).fetchall()
            return [
                NearbyCandidate(
                    party_id=r.id,
                    phone=r.phone,
                    name=r.business_name or r.name,
                    distance_km=float(r.distance_km),
                    attributes={
                        "address": r.address,
                        "categories": list(r.categories or []),
                        "active_orders": int(r.active_orders),
                    },
                )
                for r in rows
            ]
        if role == PartyRole.COURIER:
            rows = (await db.execute(_FIND_COURIERS_SQL, params)).fetchall()
            return [
                NearbyCandidate(
                    party_id=r.id,
                    phone=r.phone,
                    name=r.name,
                    distance_km=float(r.distance_km),
                    attributes={"vehicle": r.vehicle, "address": r.address},
                )
                for r in rows
            ]
        raise ValueError(f"GeoIndex does not search role {role!r}")

    async def lock_and_count_active_orders(
        self, db: AsyncSession, supplier_id: str
    ) -> int | None:
        """Lock the supplier row for the rest of the transaction, then count.

        Returns None when the supplier does not exist.
        """
        locked = (await db.execute(_LOCK_PARTY_SQL, {"id": supplier_id})).fetchone()
        if locked is None:
            return None
        return int((await db.execute(_COUNT_ACTIVE_ORDERS_SQL, {"id": supplier_id})).scalar_one())

    async def mark_busy(self, db: AsyncSession, courier_id: str) -> bool:
        result = await db.execute(_MARK_BUSY_SQL, {"id": courier_id})
        return result.fetchone() is not None

    async def clear_busy(self, db: AsyncSession, courier_id: str) -> None:
        await db.execute(_CLEAR_BUSY_SQL, {"id": courier_id})
