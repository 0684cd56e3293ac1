"""Unit tests for NotificationDispatcher (post-commit send + outbox retry)."""

from unittest.mock import AsyncMock

import pytest

from src.js_notify.application.dispatcher import NotificationDispatcher, backoff_seconds
from src.js_notify.domain.models import DeliveryResult, OutboundMessage, PendingMessage


class _SessionFactory:
    """Callable returning an async context manager that yields one mock session."""

    def __init__(self) -> None:
        self.db = AsyncMock()

    def __call__(self) -> "_SessionFactory":
        return self

    async def __aenter__(self) -> AsyncMock:
        return self.db

    async def __aexit__(self, *exc: object) -> bool:
        return False


def _sink(*results: DeliveryResult | Exception) -> AsyncMock:
    sink = AsyncMock()
    sink.name = "fake"
    sink.send = AsyncMock(side_effect=list(results))
    return sink


def _msg(text: str = "hello") -> OutboundMessage:
    return OutboundMessage(phone="6281100000001", text=text, order_id="o-1", purpose="test")


def _pending(retry_count: int) -> PendingMessage:
    return PendingMessage(
        id=7, phone="6281100000001", message="hello", order_id="o-1",
        status="pending", retry_count=retry_count,
    )


@pytest.fixture
def outbox() -> AsyncMock:
    return AsyncMock()


class TestDispatch:
    async def test_delivered_messages_counted(self, outbox: AsyncMock) -> None:
        sink = _sink(DeliveryResult(ok=True), DeliveryResult(ok=True))
        dispatcher = NotificationDispatcher(sink, outbox, _SessionFactory())
        assert await dispatcher.dispatch([_msg("a"), _msg("b")]) == 2
        outbox.enqueue.assert_not_awaited()

    async def test_failed_send_is_queued(self, outbox: AsyncMock) -> None:
        sessions = _SessionFactory()
        sink = _sink(DeliveryResult(ok=False, code="WA_DEVICE_OFFLINE", message="disconnected"))
        dispatcher = NotificationDispatcher(sink, outbox, sessions)

        assert await dispatcher.dispatch([_msg()]) == 0

        args = outbox.enqueue.await_args.args
        assert args[1:4] == ("6281100000001", "hello", "o-1")
        assert "WA_DEVICE_OFFLINE" in args[4]
        assert args[5] == backoff_seconds(0)
        sessions.db.commit.assert_awaited_once()

    async def test_sink_exception_is_queued(self, outbox: AsyncMock) -> None:
        dispatcher = NotificationDispatcher(
            _sink(RuntimeError("socket closed")), outbox, _SessionFactory()
        )
        assert await dispatcher.dispatch([_msg()]) == 0
        outbox.enqueue.assert_awaited_once()

    async def test_outbox_failure_does_not_raise(self, outbox: AsyncMock) -> None:
        outbox.enqueue.side_effect = RuntimeError("db down")
        dispatcher = NotificationDispatcher(
            _sink(DeliveryResult(ok=False, code="X")), outbox, _SessionFactory()
        )
        assert await dispatcher.dispatch([_msg()]) == 0

    async def test_one_failure_does_not_stop_the_rest(self, outbox: AsyncMock) -> None:
        sink = _sink(DeliveryResult(ok=False, code="X"), DeliveryResult(ok=True))
        dispatcher = NotificationDispatcher(sink, outbox, _SessionFactory())
        assert await dispatcher.dispatch([_msg("a"), _msg("b")]) == 1


class TestRetryPending:
    async def test_sent_on_retry(self, outbox: AsyncMock) -> None:
        outbox.claim_due.return_value = [_pending(0)]
        dispatcher = NotificationDispatcher(_sink(DeliveryResult(ok=True)), outbox)
        db = AsyncMock()
        stats = await dispatcher.retry_pending(db)
        assert stats == {"sent": 1, "retried": 0, "failed": 0}
        outbox.mark_sent.assert_awaited_once_with(db, 7)

    async def test_failure_backs_off(self, outbox: AsyncMock) -> None:
        outbox.claim_due.return_value = [_pending(0)]
        dispatcher = NotificationDispatcher(_sink(DeliveryResult(ok=False, code="X")), outbox)
        stats = await dispatcher.retry_pending(AsyncMock())
        assert stats["retried"] == 1
        assert outbox.mark_retry.await_args.args[3] == backoff_seconds(1)

    async def test_gives_up_after_max_retries(self, outbox: AsyncMock) -> None:
        outbox.claim_due.return_value = [_pending(2)]
        dispatcher = NotificationDispatcher(_sink(DeliveryResult(ok=False, code="X")), outbox)
        stats = await dispatcher.retry_pending(AsyncMock())
        assert stats["failed"] == 1
        outbox.mark_failed.assert_awaited_once()
        outbox.mark_retry.assert_not_awaited()


def test_backoff_doubles() -> None:
    assert [backoff_seconds(n) for n in range(4)] == [2, 4, 8, 16]
