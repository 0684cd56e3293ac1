"""Domain models for js_party — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class Party:
    id: str
    phone: str               # normalized 62xxxxxxxxxx
    name: str
    role: str                # PartyRole value
    latitude: float | None = None
    longitude: float | None = None
    address: str | None = None
    business_name: str | None = None
    categories: list[str] = field(default_factory=list)
    vehicle: str | None = None   # couriers only
    is_busy: bool = False        # couriers only: one active delivery at a time
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def display_name(self) -> str:
        return self.business_name or self.name

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass
class NearbyCandidate:
    """One GeoIndex hit. distance_km is the great-circle distance, unrounded."""

    party_id: str
    phone: str
    name: str
    distance_km: float
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass
class SearchFilter:
    category: str | None = None
    exclude_ids: list[str] = field(default_factory=list)
    max_active_orders: int | None = None  # suppliers only; None = settings default
