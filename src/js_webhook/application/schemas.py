"""Inbound WhatsApp gateway payload (Fonnte-style webhook)."""

from typing import Any

from pydantic import BaseModel, ConfigDict


class WhatsAppWebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    device: str | None = None
    sender: str | None = None
    message: str | None = None
    url: str | None = None                 # attached image / file
    location: Any = None                   # {"latitude": .., "longitude": ..} when shared
    name: str | None = None
    type: str | None = None
    state: str | int | None = None         # delivery status callbacks
    stateid: str | None = None
    status: str | None = None              # "connect" / "disconnect" device callbacks

    @property
    def is_connection_event(self) -> bool:
        return self.status in ("connect", "disconnect")

    @property
    def is_status_callback(self) -> bool:
        return not self.sender and (self.state is not None or self.stateid is not None)

    def shared_location(self) -> tuple[float, float] | None:
        loc = self.location
        if not isinstance(loc, dict):
            return None
        try:
            return float(loc["latitude"]), float(loc["longitude"])
        except (KeyError, TypeError, ValueError):
            return None


class WebhookResult(BaseModel):
    type: str
    command: str | None = None
    replies: int = 0
