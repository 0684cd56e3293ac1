"""OrderRepository — raw SQL persistence implementation.

compare_and_set() is the only statement that writes orders.status. It is a
conditional UPDATE keyed on the expected prior status; None means another
transaction changed the order first (or it does not exist).
"""

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.js_order.domain.models import Order

# ---------------------------------------------------------------------------
# Column sets
# ---------------------------------------------------------------------------

_UPDATABLE_COLUMNS: frozenset[str] = frozenset({
    "supplier_id", "courier_id", "supplier_price", "supplier_offered_price",
    "buyer_price", "shipping_cost", "service_fee", "total_amount",
    "delivery_method", "distance_km",
    "pickup_latitude", "pickup_longitude", "pickup_address",
    "courier_latitude", "courier_longitude", "courier_location_updated_at",
    "delivery_token", "negotiation_started_at", "paid_at",
    "pickup_photo_url", "pickup_at", "delivered_at",
    "dispute_reason", "dispute_image_url", "dispute_confidence",
    "disputed_at", "resolved_at", "cancel_reason",
})

_SELECT_COLUMNS = """
    id, buyer_id, supplier_id, courier_id, status,
    product_name, category, quantity, unit, weight_kg,
    buyer_price, supplier_price, supplier_offered_price,
    shipping_cost, service_fee, total_amount, delivery_method, distance_km,
    delivery_latitude, delivery_longitude, delivery_address,
    pickup_latitude, pickup_longitude, pickup_address,
    courier_latitude, courier_longitude, courier_location_updated_at,
    delivery_token, negotiation_started_at, paid_at,
    pickup_photo_url, pickup_at, delivered_at,
    dispute_reason, dispute_image_url, dispute_confidence, disputed_at, resolved_at,
    cancel_reason, created_at, updated_at
"""

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_INSERT_ORDER_SQL = text("""
    INSERT INTO orders (id, buyer_id, status, product_name, category, quantity, unit,
        weight_kg, buyer_price, shipping_cost, service_fee, total_amount,
        delivery_latitude, delivery_longitude, delivery_address)
    VALUES (:id, :buyer_id, :status, :product_name, :category, :quantity, :unit,
        :weight_kg, :buyer_price, :shipping_cost, :service_fee, :total_amount,
        :delivery_latitude, :delivery_longitude, :delivery_address)
""")

_GET_ORDER_BY_ID_SQL = text(f"SELECT {_SELECT_COLUMNS} FROM orders WHERE id = :id")

_GET_ORDER_FOR_UPDATE_SQL = text(
    f"SELECT {_SELECT_COLUMNS} FROM orders WHERE id = :id FOR UPDATE"
)

_RECORD_TRANSITION_SQL = text("""
    INSERT INTO order_status_history (order_id, from_status, to_status, reason)
    VALUES (:order_id, :from_status, :to_status, :reason)
""")

_FIND_BY_REF_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM orders
    WHERE id LIKE :prefix
      AND (buyer_id = :party_id OR supplier_id = :party_id OR courier_id = :party_id)
    ORDER BY created_at DESC
    LIMIT 5
""")

_LIST_BY_PARTY_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM orders
    WHERE (buyer_id = :party_id OR supplier_id = :party_id OR courier_id = :party_id)
      AND (CAST(:cursor_id AS TEXT) IS NULL OR id < :cursor_id)
      AND (CAST(:statuses_csv AS TEXT) IS NULL
           OR status = ANY(string_to_array(CAST(:statuses_csv AS TEXT), ',')))
    ORDER BY id DESC
    LIMIT :limit
""")


def _set_clause(changes: dict[str, Any]) -> str:
    unknown = set(changes) - _UPDATABLE_COLUMNS
    if unknown:
        raise ValueError(f"Not updatable order columns: {sorted(unknown)}")
    return "".join(f"{col} = :{col}, " for col in sorted(changes))


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_order(row: Any) -> Order:
    """Convert a DB result row to an Order domain object."""
    order = Order(
        id=row.id,
        buyer_id=row.buyer_id,
        product_name=row.product_name,
        quantity=row.quantity,
        unit=row.unit,
        weight_kg=float(row.weight_kg),
        buyer_price=row.buyer_price,
        delivery_latitude=row.delivery_latitude,
        delivery_longitude=row.delivery_longitude,
        delivery_address=row.delivery_address,
        category=row.category,
        status=row.status,
        supplier_id=row.supplier_id,
        courier_id=row.courier_id,
        supplier_price=row.supplier_price,
        supplier_offered_price=row.supplier_offered_price,
        shipping_cost=row.shipping_cost,
        service_fee=row.service_fee,
        delivery_method=row.delivery_method,
        distance_km=float(row.distance_km) if row.distance_km is not None else None,
        pickup_latitude=row.pickup_latitude,
        pickup_longitude=row.pickup_longitude,
        pickup_address=row.pickup_address,
        courier_latitude=row.courier_latitude,
        courier_longitude=row.courier_longitude,
        courier_location_updated_at=row.courier_location_updated_at,
        delivery_token=row.delivery_token,
        negotiation_started_at=row.negotiation_started_at,
        paid_at=row.paid_at,
        pickup_photo_url=row.pickup_photo_url,
        pickup_at=row.pickup_at,
        delivered_at=row.delivered_at,
        dispute_reason=row.dispute_reason,
        dispute_image_url=row.dispute_image_url,
        dispute_confidence=row.dispute_confidence,
        disputed_at=row.disputed_at,
        resolved_at=row.resolved_at,
        cancel_reason=row.cancel_reason,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
    # Stored total is authoritative (it was locked at waiting_payment).
    order.total_amount = row.total_amount
    return order


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class OrderRepository:
    """Concrete implementation of OrderRepositoryProtocol using raw SQL."""

    async def insert(self, db: AsyncSession, order: Order) -> None:
        await db.execute(
            _INSERT_ORDER_SQL,
            {
                "id": order.id,
                "buyer_id": order.buyer_id,
                "status": order.status,
                "product_name": order.product_name,
                "category": order.category,
                "quantity": order.quantity,
                "unit": order.unit,
                "weight_kg": order.weight_kg,
                "buyer_price": order.buyer_price,
                "shipping_cost": order.shipping_cost,
                "service_fee": order.service_fee,
                "total_amount": order.total_amount,
                "delivery_latitude": order.delivery_latitude,
                "delivery_longitude": order.delivery_longitude,
                "delivery_address": order.delivery_address,
            },
        )

    async def get_by_id(self, db: AsyncSession, order_id: str) -> Order | None:
        row = (await db.execute(_GET_ORDER_BY_ID_SQL, {"id": order_id})).fetchone()
        return _row_to_order(row) if row else None

    async def get_for_update(self, db: AsyncSession, order_id: str) -> Order | None:
        row = (await db.execute(_GET_ORDER_FOR_UPDATE_SQL, {"id": order_id})).fetchone()
        return _row_to_order(row) if row else None

    async def compare_and_set(
        self,
        db: AsyncSession,
        order_id: str,
        expected: str,
        target: str,
        changes: dict[str, Any],
    ) -> Order | None:
        sql = text(f"""
            UPDATE orders
            SET {_set_clause(changes)}status = :target, updated_at = NOW()
            WHERE id = :id AND status = :expected
            RETURNING {_SELECT_COLUMNS}
        """)
        params = {**changes, "id": order_id, "expected": expected, "target": target}
        row = (await db.execute(sql, params)).fetchone()
        return _row_to_order(row) if row else None

    async def update_fields(
        self,
        db: AsyncSession,
        order_id: str,
        changes: dict[str, Any],
        required_statuses: list[str],
    ) -> Order | None:
        """Non-status update guarded by the current status (e.g. courier tracking)."""
        if not changes:
            raise ValueError("update_fields needs at least one column")
        sql = text(f"""
            UPDATE orders
            SET {_set_clause(changes)}updated_at = NOW()
            WHERE id = :id
              AND status = ANY(string_to_array(CAST(:statuses_csv AS TEXT), ','))
            RETURNING {_SELECT_COLUMNS}
        """)
        params = {**changes, "id": order_id, "statuses_csv": ",".join(required_statuses)}
        row = (await db.execute(sql, params)).fetchone()
        return _row_to_order(row) if row else None

    async def record_transition(
        self,
        db: AsyncSession,
        order_id: str,
        from_status: str,
        to_status: str,
        reason: str | None,
    ) -> None:
        await db.execute(
            _RECORD_TRANSITION_SQL,
            {
                "order_id": order_id,
                "from_status": from_status,
                "to_status": to_status,
                "reason": (reason or "")[:240] or None,
            },
        )

    async def find_by_ref(
        self, db: AsyncSession, ref: str, party_id: str
    ) -> list[Order]:
        prefix = ref.replace("%", "").replace("_", "").lower() + "%"
        rows = (
            await db.execute(_FIND_BY_REF_SQL, {"prefix": prefix, "party_id": party_id})
        ).fetchall()
        return [_row_to_order(r) for r in rows]

    async def list_by_party(
        self,
        db: AsyncSession,
        party_id: str,
        statuses: list[str] | None,
        limit: int,
        cursor: str | None,
    ) -> list[Order]:
        statuses_csv = ",".join(statuses) if statuses else None
        rows = (
            await db.execute(
                _LIST_BY_PARTY_SQL,
                {
                    "party_id": party_id,
                    "cursor_id": cursor,
                    "statuses_csv": statuses_csv,
                    "limit": limit,
                },
            )
        ).fetchall()
        return [_row_to_order(r) for r in rows]
