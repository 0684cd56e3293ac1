"""OutboxRepository — pending_messages table for notifications that failed.

claim_due uses FOR UPDATE SKIP LOCKED so several workers can drain the
outbox concurrently without sending the same message twice.
"""

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.js_notify.domain.models import PendingMessage

_COLUMNS = (
    "id, phone, message, order_id, status, retry_count, next_attempt_at, last_error, created_at"
)

_ENQUEUE_SQL = text("""
    INSERT INTO pending_messages (phone, message, order_id, status, retry_count,
                                  next_attempt_at, last_error)
    VALUES (:phone, :message, :order_id, 'pending', 0,
            NOW() + make_interval(secs => :delay), :error)
    RETURNING id
""")

_CLAIM_DUE_SQL = text(f"""
    SELECT {_COLUMNS}
    FROM pending_messages
    WHERE status = 'pending' AND next_attempt_at <= NOW()
    ORDER BY next_attempt_at ASC, id ASC
    LIMIT :limit
    FOR UPDATE SKIP LOCKED
""")

_MARK_SENT_SQL = text("""
    UPDATE pending_messages
    SET status = 'sent', sent_at = NOW(), updated_at = NOW()
    WHERE id = :id
""")

_MARK_RETRY_SQL = text("""
    UPDATE pending_messages
    SET retry_count = retry_count + 1,
        next_attempt_at = NOW() + make_interval(secs => :delay),
        last_error = :error,
        updated_at = NOW()
    WHERE id = :id
""")

_MARK_FAILED_SQL = text("""
    UPDATE pending_messages
    SET status = 'failed', retry_count = retry_count + 1,
        last_error = :error, updated_at = NOW()
    WHERE id = :id
""")


def _row_to_pending(row: Any) -> PendingMessage:
    return PendingMessage(
        id=row.id,
        phone=row.phone,
        message=row.message,
        order_id=row.order_id,
        status=row.status,
        retry_count=row.retry_count,
        next_attempt_at=row.next_attempt_at,
        last_error=row.last_error,
        created_at=row.created_at,
    )


class OutboxRepository:
    async def enqueue(
        self,
        db: AsyncSession,
        phone: str,
        message: str,
        order_id: str | None,
        error: str,
        delay_seconds: int,
    ) -> int:
        result = await db.execute(
            _ENQUEUE_SQL,
            {
                "phone": phone,
                "message": message,
                "order_id": order_id,
                "error": error[:500],
                "delay": float(delay_seconds),
            },
        )
        return int(result.scalar_one())

    async def claim_due(self, db: AsyncSession, limit: int) -> list[PendingMessage]:
        result = await db.execute(_CLAIM_DUE_SQL, {"limit": limit})
        return [_row_to_pending(r) for r in result.fetchall()]

    async def mark_sent(self, db: AsyncSession, message_id: int) -> None:
        await db.execute(_MARK_SENT_SQL, {"id": message_id})

    async def mark_retry(
        self, db: AsyncSession, message_id: int, error: str, delay_seconds: int
    ) -> None:
        await db.execute(
            _MARK_RETRY_SQL,
            {"id": message_id, "error": error[:500], "delay": float(delay_seconds)},
        )

    async def mark_failed(self, db: AsyncSession, message_id: int, error: str) -> None:
        await db.execute(_MARK_FAILED_SQL, {"id": message_id, "error": error[:500]})
