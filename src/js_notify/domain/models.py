"""Domain models for js_notify — pure dataclasses."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class OutboundMessage:
    phone: str                 # normalized 62xxxxxxxxxx
    text: str
    order_id: str | None = None
    purpose: str = ""          # template name, only used in logs


@dataclass
class DeliveryResult:
    ok: bool
    code: str = ""
    message: str = ""
    raw: dict | None = None


@dataclass
class PendingMessage:
    id: int
    phone: str
    message: str
    order_id: str | None
    status: str                # MessageStatus value
    retry_count: int
    next_attempt_at: datetime | None = None
    last_error: str | None = None
    created_at: datetime | None = None
