"""NotificationDispatcher — post-commit delivery with an outbox fallback.

Services collect OutboundMessage objects while they mutate state and hand
them to dispatch() only after their transaction has committed, so a party is
never told about a change that was rolled back. dispatch() never raises:
a failed send is logged and written to pending_messages (in its own
session), where retry_pending() picks it up with exponential backoff.
"""

import logging
from collections.abc import Callable, Iterable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.js_common.database import async_session_factory
from src.js_common.errors import NotificationDeliveryFailedError
from src.js_common.phone import mask_phone
from src.js_notify.domain.models import DeliveryResult, OutboundMessage, PendingMessage
from src.js_notify.domain.repository import OutboxRepositoryProtocol
from src.js_notify.domain.sink import NotificationSink
from src.js_notify.infrastructure.outbox import OutboxRepository
from src.js_notify.infrastructure.whatsapp import build_default_sink

logger = logging.getLogger(__name__)


def backoff_seconds(retry_count: int) -> int:
    """2s, 4s, 8s, ... for retry_count 0, 1, 2, ..."""
    return settings.NOTIFY_BACKOFF_SECONDS * (2 ** retry_count)


class NotificationDispatcher:
    def __init__(
        self,
        sink: NotificationSink | None = None,
        outbox: OutboxRepositoryProtocol | None = None,
        session_factory: Callable[[], Any] = async_session_factory,
    ) -> None:
        self._sink: NotificationSink = sink or build_default_sink()
        self._outbox: OutboxRepositoryProtocol = outbox or OutboxRepository()
        self._session_factory = session_factory

    @property
    def sink(self) -> NotificationSink:
        return self._sink

    async def _attempt(self, phone: str, text: str) -> DeliveryResult:
        """One send; raises NotificationDeliveryFailedError on any failure."""
        try:
            result = await self._sink.send(phone, text)
        except Exception as exc:
            raise NotificationDeliveryFailedError(phone, repr(exc)) from exc
        if not result.ok:
            raise NotificationDeliveryFailedError(phone, f"{result.code}: {result.message}")
        return result

    async def dispatch(self, messages: Iterable[OutboundMessage]) -> int:
        """Send each message once; queue failures. Returns the number delivered now."""
        delivered = 0
        for msg in messages:
            try:
                await self._attempt(msg.phone, msg.text)
                delivered += 1
            except NotificationDeliveryFailedError as exc:
                logger.warning(
                    "Notification %s to %s failed, queued for retry: %s",
                    msg.purpose or "-",
                    mask_phone(msg.phone),
                    exc.message,
                )
                await self._enqueue(msg, exc.message)
        return delivered

    async def _enqueue(self, msg: OutboundMessage, error: str) -> None:
        try:
            async with self._session_factory() as db:
                await self._outbox.enqueue(
                    db, msg.phone, msg.text, msg.order_id, error, backoff_seconds(0)
                )
                await db.commit()
        except Exception:
            # The message is lost at this point; keep the caller's request alive.
            logger.exception(
                "Could not queue failed notification to %s", mask_phone(msg.phone)
            )

    async def retry_pending(self, db: AsyncSession, limit: int = 50) -> dict[str, int]:
        """Drain due outbox rows once. The caller owns the transaction."""
        stats = {"sent": 0, "retried": 0, "failed": 0}
        due: list[PendingMessage] = await self._outbox.claim_due(db, limit)
        for pending in due:
            try:
                await self._attempt(pending.phone, pending.message)
            except NotificationDeliveryFailedError as exc:
                if pending.retry_count + 1 >= settings.NOTIFY_MAX_RETRIES:
                    await self._outbox.mark_failed(db, pending.id, exc.message)
                    stats["failed"] += 1
                    logger.error(
                        "Notification %d to %s failed permanently after %d attempts: %s",
                        pending.id,
                        mask_phone(pending.phone),
                        pending.retry_count + 1,
                        exc.message,
                    )
                else:
                    await self._outbox.mark_retry(
                        db, pending.id, exc.message, backoff_seconds(pending.retry_count + 1)
                    )
                    stats["retried"] += 1
                continue
            await self._outbox.mark_sent(db, pending.id)
            stats["sent"] += 1
        return stats


_dispatcher: NotificationDispatcher | None = None


def get_dispatcher() -> NotificationDispatcher:
    """Process-wide dispatcher (one HTTP client pool per process)."""
    global _dispatcher  # noqa: PLW0603
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher()
    return _dispatcher


async def close_dispatcher() -> None:
    global _dispatcher  # noqa: PLW0603
    if _dispatcher is not None:
        aclose = getattr(_dispatcher.sink, "aclose", None)
        if aclose is not None:
            await aclose()
        _dispatcher = None
