"""Order domain model — pure dataclass, no SQLAlchemy dependency."""

from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any

from src.js_common.money import calculate_total
from src.js_order.domain.transitions import TERMINAL_STATUSES


@dataclass
class Order:
    id: str
    buyer_id: str
    product_name: str
    quantity: int
    unit: str
    weight_kg: float
    buyer_price: int            # rupiah
    delivery_latitude: float
    delivery_longitude: float
    delivery_address: str
    category: str | None = None
    status: str = "searching_supplier"
    # Parties
    supplier_id: str | None = None   # set once a supplier is matched
    courier_id: str | None = None    # courier-mediated path only
    # Commercial (rupiah)
    supplier_price: int | None = None
    supplier_offered_price: int | None = None
    shipping_cost: int = 0
    service_fee: int = 0
    total_amount: int = 0
    delivery_method: str | None = None   # DeliveryMethod value, set on supplier accept
    distance_km: float | None = None     # pickup -> delivery, set on supplier accept
    # Pickup point (the supplier's location once matched)
    pickup_latitude: float | None = None
    pickup_longitude: float | None = None
    pickup_address: str | None = None
    # Live courier tracking
    courier_latitude: float | None = None
    courier_longitude: float | None = None
    courier_location_updated_at: datetime | None = None
    # Audit / dispute
    delivery_token: str | None = None
    negotiation_started_at: datetime | None = None
    paid_at: datetime | None = None
    pickup_photo_url: str | None = None
    pickup_at: datetime | None = None
    delivered_at: datetime | None = None
    dispute_reason: str | None = None
    dispute_image_url: str | None = None
    dispute_confidence: float | None = None
    disputed_at: datetime | None = None
    resolved_at: datetime | None = None
    cancel_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        self.recompute_total()

    def recompute_total(self) -> int:
        self.total_amount = calculate_total(self.buyer_price, self.service_fee, self.shipping_cost)
        return self.total_amount

    def apply(self, changes: dict[str, Any]) -> "Order":
        """Set fields in place and keep total_amount consistent. Returns self."""
        known = {f.name for f in fields(self)}
        for key, value in changes.items():
            if key not in known or key in ("id", "status", "total_amount"):
                raise ValueError(f"Order field {key!r} cannot be changed this way")
            setattr(self, key, value)
        self.recompute_total()
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_self_delivery(self) -> bool:
        return self.delivery_method == "self"

    def involves(self, party_id: str) -> bool:
        return party_id in (self.buyer_id, self.supplier_id, self.courier_id)
