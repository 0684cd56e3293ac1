"""Domain models for js_broadcast — pure dataclasses."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from src.js_common.enums import OrderStatus
from src.js_notify.domain.models import OutboundMessage
from src.js_order.domain.models import Order


@dataclass
class BroadcastRecord:
    id: int
    order_id: str
    kind: str                    # BroadcastKind value
    candidate_id: str
    round: int                   # 1 for the first fan-out, +1 per re-broadcast
    distance_km: float | None = None
    sent_at: datetime | None = None
    response: str | None = None  # None = still open; else BroadcastResponse value
    responded_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.response is None


@dataclass
class BroadcastBatch:
    """Result of one fan-out. Messages are dispatched by the caller after commit."""

    order_id: str
    kind: str
    round: int
    records: list[BroadcastRecord] = field(default_factory=list)
    messages: list[OutboundMessage] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.records


@dataclass
class AcceptTerms:
    """What an acceptance does to the order: target status plus field changes."""

    target: OrderStatus
    changes: dict[str, Any] = field(default_factory=dict)
    reason: str = ""


class OutcomeKind(str, Enum):
    MATCHED = "matched"                        # this acceptance won the order
    REJECTION_RECORDED = "rejection_recorded"  # others may still answer
    EXHAUSTED = "exhausted"                    # last open offer declined; order failed/stuck
    DUPLICATE = "duplicate"                    # repeat of an answer already recorded


@dataclass
class ResolutionOutcome:
    kind: OutcomeKind
    order_id: str
    broadcast_kind: str
    candidate_id: str
    order: Order | None = None
