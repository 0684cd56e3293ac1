"""Pydantic schemas for js_party API."""

from pydantic import BaseModel, Field, model_validator

from src.js_common.enums import PartyRole, VehicleType
from src.js_party.domain.models import Party


class CreatePartyRequest(BaseModel):
    phone: str = Field(..., min_length=8, max_length=20)
    name: str = Field(..., min_length=1, max_length=120)
    role: PartyRole
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    address: str | None = Field(None, max_length=500)
    business_name: str | None = Field(None, max_length=120)
    categories: list[str] = Field(default_factory=list)
    vehicle: VehicleType | None = None

    @model_validator(mode="after")
    def check_location_pair(self) -> "CreatePartyRequest":
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be given together")
        if self.role != PartyRole.COURIER and self.vehicle is not None:
            raise ValueError("vehicle only applies to couriers")
        return self


class UpdateLocationRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: str | None = Field(None, max_length=500)


class PartyResponse(BaseModel):
    id: str
    phone: str
    name: str
    role: str
    latitude: float | None
    longitude: float | None
    address: str | None
    business_name: str | None
    categories: list[str]
    vehicle: str | None
    is_busy: bool
    is_active: bool

    @classmethod
    def from_domain(cls, party: Party) -> "PartyResponse":
        return cls(
            id=party.id,
            phone=party.phone,
            name=party.name,
            role=party.role,
            latitude=party.latitude,
            longitude=party.longitude,
            address=party.address,
            business_name=party.business_name,
            categories=party.categories,
            vehicle=party.vehicle,
            is_busy=party.is_busy,
            is_active=party.is_active,
        )
