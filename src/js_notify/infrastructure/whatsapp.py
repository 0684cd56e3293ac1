"""WhatsApp gateway sinks.

WhatsAppSink talks to a Fonnte-compatible HTTP API: form POST with the token
in the Authorization header, JSON reply `{"status": true|false, "reason": ...}`.
LogOnlySink is selected when no WHATSAPP_TOKEN is configured (local dev).
"""

import logging

import httpx

from config.settings import settings
from src.js_common.phone import mask_phone
from src.js_notify.domain.models import DeliveryResult

logger = logging.getLogger(__name__)


def _map_gateway_error(status: int, reason: str) -> str:
    msg = (reason or "").lower()
    if status in (401, 403) or "token" in msg:
        return "WA_AUTH_FAILED"
    if status == 429:
        return "WA_RATE_LIMITED"
    if "target" in msg or "number" in msg or "invalid" in msg:
        return "WA_INVALID_RECIPIENT"
    if "disconnect" in msg or "device" in msg:
        return "WA_DEVICE_OFFLINE"
    return "WA_PROVIDER_DOWN"


class WhatsAppSink:
    name = "whatsapp"

    def __init__(
        self,
        api_url: str | None = None,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_url = api_url or settings.WHATSAPP_API_URL
        self._token = token if token is not None else settings.WHATSAPP_TOKEN
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=settings.WHATSAPP_TIMEOUT_SECONDS)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send(self, phone: str, text: str) -> DeliveryResult:
        try:
            resp = await self._get_client().post(
                self._api_url,
                headers={"Authorization": self._token},
                data={"target": phone, "message": text, "countryCode": "62"},
            )
        except httpx.TimeoutException:
            return DeliveryResult(ok=False, code="WA_PROVIDER_DOWN", message="timeout")
        except httpx.HTTPError as exc:
            return DeliveryResult(ok=False, code="WA_PROVIDER_DOWN", message=str(exc)[:200])

        try:
            body = resp.json()
        except ValueError:
            body = {"payload": resp.text[:200]}
        if not isinstance(body, dict):
            body = {"payload": body}

        if resp.is_success and body.get("status") is not False:
            logger.debug("WhatsApp sent to %s", mask_phone(phone))
            return DeliveryResult(ok=True, code="OK", message="sent", raw=body)

        reason = str(body.get("reason") or body.get("message") or f"http_{resp.status_code}")
        return DeliveryResult(
            ok=False,
            code=_map_gateway_error(resp.status_code, reason),
            message=reason[:200],
            raw=body,
        )


class LogOnlySink:
    """Writes messages to the log instead of sending them."""

    name = "log"

    async def send(self, phone: str, text: str) -> DeliveryResult:
        logger.info("[log-only WhatsApp] to=%s\n%s", mask_phone(phone), text)
        return DeliveryResult(ok=True, code="OK", message="logged", raw={"to": phone})


def build_default_sink() -> WhatsAppSink | LogOnlySink:
    if settings.WHATSAPP_TOKEN:
        return WhatsAppSink()
    logger.warning("WHATSAPP_TOKEN not set; notifications are only logged")
    return LogOnlySink()
