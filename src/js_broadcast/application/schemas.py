"""Pydantic schemas for js_broadcast API."""

from datetime import datetime

from pydantic import BaseModel

from src.js_broadcast.domain.models import BroadcastRecord


class BroadcastItem(BaseModel):
    id: int
    kind: str
    candidate_id: str
    round: int
    distance_km: float | None
    sent_at: datetime | None
    response: str | None
    responded_at: datetime | None

    @classmethod
    def from_domain(cls, record: BroadcastRecord) -> "BroadcastItem":
        return cls(
            id=record.id,
            kind=record.kind,
            candidate_id=record.candidate_id,
            round=record.round,
            distance_km=record.distance_km,
            sent_at=record.sent_at,
            response=record.response,
            responded_at=record.responded_at,
        )


class BroadcastListResponse(BaseModel):
    order_id: str
    broadcasts: list[BroadcastItem]
