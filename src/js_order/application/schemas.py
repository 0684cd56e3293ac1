"""Pydantic schemas for js_order API."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from src.js_common.enums import DeliveryMethod, OrderStatus
from src.js_common.money import rupiah_to_display
from src.js_order.domain.models import Order

# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class CreateOrderRequest(BaseModel):
    buyer_id: str = Field(..., min_length=1)
    product_name: str = Field(..., min_length=1, max_length=200)
    category: str | None = Field(None, max_length=60)
    quantity: int = Field(..., gt=0)
    unit: str = Field("kg", min_length=1, max_length=20)
    weight_kg: float = Field(..., gt=0)
    buyer_price: int = Field(..., gt=0, description="Goods price in rupiah")
    delivery_latitude: float = Field(..., ge=-90, le=90)
    delivery_longitude: float = Field(..., ge=-180, le=180)
    delivery_address: str = Field(..., min_length=1, max_length=500)


class SupplierResponseRequest(BaseModel):
    supplier_id: str
    accept: bool
    delivery_method: DeliveryMethod = DeliveryMethod.SELF
    offered_price: int | None = Field(None, gt=0)

    @model_validator(mode="after")
    def check_offer(self) -> "SupplierResponseRequest":
        if self.offered_price is not None and self.delivery_method != DeliveryMethod.SELF:
            raise ValueError("a price offer implies self-delivery")
        return self


class CourierResponseRequest(BaseModel):
    courier_id: str
    accept: bool


class BuyerActionRequest(BaseModel):
    buyer_id: str


class CancelOrderRequest(BaseModel):
    buyer_id: str
    reason: str | None = Field(None, max_length=240)


class SupplierActionRequest(BaseModel):
    supplier_id: str


class PickupRequest(BaseModel):
    party_id: str = Field(..., description="Courier, or the supplier on self-delivery")
    photo_url: str | None = Field(None, max_length=500)


class DeliverRequest(BaseModel):
    party_id: str


class ConfirmReceiptRequest(BaseModel):
    token: str = Field(..., min_length=1)


class DisputeRequest(BaseModel):
    token: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=1, max_length=1000)
    image_url: str | None = Field(None, max_length=500)


class TrackLocationRequest(BaseModel):
    order_id: str
    party_id: str = Field(..., description="Courier, or the supplier on self-delivery")
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class OrderResponse(BaseModel):
    id: str
    ref: str
    status: OrderStatus
    buyer_id: str
    supplier_id: str | None
    courier_id: str | None
    product_name: str
    category: str | None
    quantity: int
    unit: str
    weight_kg: float
    buyer_price: int
    supplier_offered_price: int | None
    shipping_cost: int
    service_fee: int
    total_amount: int
    total_display: str
    delivery_method: str | None
    distance_km: float | None
    delivery_address: str
    pickup_address: str | None
    courier_latitude: float | None
    courier_longitude: float | None
    courier_location_updated_at: datetime | None
    paid_at: datetime | None
    pickup_at: datetime | None
    delivered_at: datetime | None
    dispute_reason: str | None
    dispute_confidence: float | None
    cancel_reason: str | None
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_domain(cls, order: Order) -> "OrderResponse":
        return cls(
            id=order.id,
            ref=order.id[:8],
            status=OrderStatus(order.status),
            buyer_id=order.buyer_id,
            supplier_id=order.supplier_id,
            courier_id=order.courier_id,
            product_name=order.product_name,
            category=order.category,
            quantity=order.quantity,
            unit=order.unit,
            weight_kg=order.weight_kg,
            buyer_price=order.buyer_price,
            supplier_offered_price=order.supplier_offered_price,
            shipping_cost=order.shipping_cost,
            service_fee=order.service_fee,
            total_amount=order.total_amount,
            total_display=rupiah_to_display(order.total_amount),
            delivery_method=order.delivery_method,
            distance_km=order.distance_km,
            delivery_address=order.delivery_address,
            pickup_address=order.pickup_address,
            courier_latitude=order.courier_latitude,
            courier_longitude=order.courier_longitude,
            courier_location_updated_at=order.courier_location_updated_at,
            paid_at=order.paid_at,
            pickup_at=order.pickup_at,
            delivered_at=order.delivered_at,
            dispute_reason=order.dispute_reason,
            dispute_confidence=order.dispute_confidence,
            cancel_reason=order.cancel_reason,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class CreateOrderOutcome(str, Enum):
    BROADCAST = "broadcast"
    NO_CANDIDATES = "no_candidates"


class CreateOrderResponse(BaseModel):
    order: OrderResponse
    suppliers_contacted: int
    outcome: CreateOrderOutcome = CreateOrderOutcome.BROADCAST
    # Set when nobody was in range; shown to the operator as-is
    notice: str | None = None


class RespondResponse(BaseModel):
    outcome: str
    order: OrderResponse | None


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    next_cursor: str | None
