"""NotificationSink — "deliver this text to this phone" contract.

Sinks report failures through DeliveryResult(ok=False, code=...) instead of
raising; NotificationDispatcher decides what a failure means (outbox + retry).
"""

from typing import Protocol

from src.js_notify.domain.models import DeliveryResult


class NotificationSink(Protocol):
    name: str

    async def send(self, phone: str, text: str) -> DeliveryResult: ...
