"""BroadcastRepository — one row per (order, kind, candidate), never deleted.

Responses are written with `WHERE response IS NULL`, so each offer is
answered at most once; a second answer updates 0 rows. Only a manual
courier retry reopens a row, and only one that expired or went stale. A partial unique
index on (order_id, kind) WHERE response = 'accepted' backs the
one-winner-per-order rule at the database level.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.js_broadcast.domain.models import BroadcastRecord
from src.js_party.domain.models import NearbyCandidate

_COLUMNS = (
    "id, order_id, kind, candidate_id, round, distance_km, sent_at, response, responded_at"
)

_INSERT_SQL = text(f"""
    INSERT INTO broadcasts (order_id, kind, candidate_id, round, distance_km)
    VALUES (:order_id, :kind, :candidate_id, :round, :distance_km)
    ON CONFLICT (order_id, kind, candidate_id) DO NOTHING
    RETURNING {_COLUMNS}
""")

# Re-offer to a candidate whose earlier offer lapsed without an answer.
# Explicit answers (accepted, rejected, withdrawn) are never reopened.
_REOPEN_SQL = text(f"""
    INSERT INTO broadcasts (order_id, kind, candidate_id, round, distance_km)
    VALUES (:order_id, :kind, :candidate_id, :round, :distance_km)
    ON CONFLICT (order_id, kind, candidate_id) DO UPDATE
    SET round        = EXCLUDED.round,
        distance_km  = EXCLUDED.distance_km,
        sent_at      = NOW(),
        response     = NULL,
        responded_at = NULL
    WHERE broadcasts.response IN ('expired', 'stale')
    RETURNING {_COLUMNS}
""")

_GET_SQL = text(f"""
    SELECT {_COLUMNS} FROM broadcasts
    WHERE order_id = :order_id AND kind = :kind AND candidate_id = :candidate_id
""")

_MARK_RESPONSE_SQL = text("""
    UPDATE broadcasts
    SET response = :response, responded_at = NOW()
    WHERE id = :id AND response IS NULL
    RETURNING id
""")

_CLOSE_OPEN_SQL = text("""
    UPDATE broadcasts
    SET response = :response, responded_at = NOW()
    WHERE order_id = :order_id
      AND (CAST(:kind AS TEXT) IS NULL OR kind = :kind)
      AND response IS NULL
""")

_WITHDRAW_ACCEPTED_SQL = text("""
    UPDATE broadcasts
    SET response = 'withdrawn', responded_at = NOW()
    WHERE order_id = :order_id AND kind = :kind AND response = 'accepted'
""")

_CURRENT_ROUND_SQL = text("""
    SELECT COALESCE(MAX(round), 0) FROM broadcasts
    WHERE order_id = :order_id AND kind = :kind
""")

_ROUND_COUNTS_SQL = text("""
    SELECT COUNT(*) FILTER (WHERE response IS NULL)       AS open_count,
           COUNT(*) FILTER (WHERE response = 'accepted')  AS accepted_count
    FROM broadcasts
    WHERE order_id = :order_id AND kind = :kind AND round = :round
""")

_CONTACTED_SQL = text("""
    SELECT candidate_id FROM broadcasts
    WHERE order_id = :order_id AND kind = :kind
    ORDER BY id
""")

_DECLINED_SQL = text("""
    SELECT candidate_id FROM broadcasts
    WHERE order_id = :order_id AND kind = :kind AND response = 'rejected'
    ORDER BY id
""")

_EXPIRE_SQL = text("""
    UPDATE broadcasts
    SET response = 'expired', responded_at = NOW()
    WHERE response IS NULL AND sent_at < :cutoff
    RETURNING order_id, kind
""")

_OPEN_FOR_CANDIDATE_SQL = text(f"""
    SELECT {_COLUMNS} FROM broadcasts
    WHERE candidate_id = :candidate_id
      AND response IS NULL
      AND (CAST(:kind AS TEXT) IS NULL OR kind = :kind)
      AND (CAST(:prefix AS TEXT) IS NULL OR order_id LIKE :prefix)
    ORDER BY sent_at DESC
    LIMIT 10
""")

_CLOSED_FOR_CANDIDATE_SQL = text(f"""
    SELECT {_COLUMNS} FROM broadcasts
    WHERE candidate_id = :candidate_id
      AND response = :response
      AND (CAST(:kind AS TEXT) IS NULL OR kind = :kind)
      AND (CAST(:prefix AS TEXT) IS NULL OR order_id LIKE :prefix)
    ORDER BY responded_at DESC
    LIMIT 10
""")

_LIST_FOR_ORDER_SQL = text(f"""
    SELECT {_COLUMNS} FROM broadcasts
    WHERE order_id = :order_id
    ORDER BY kind, round, distance_km NULLS LAST, id
""")


def _row_to_record(row: Any) -> BroadcastRecord:
    return BroadcastRecord(
        id=row.id,
        order_id=row.order_id,
        kind=row.kind,
        candidate_id=row.candidate_id,
        round=row.round,
        distance_km=float(row.distance_km) if row.distance_km is not None else None,
        sent_at=row.sent_at,
        response=row.response,
        responded_at=row.responded_at,
    )


class BroadcastRepository:
    async def insert_records(
        self,
        db: AsyncSession,
        order_id: str,
        kind: str,
        round_no: int,
        candidates: list[NearbyCandidate],
        reopen_lapsed: bool = False,
    ) -> list[BroadcastRecord]:
        """Insert one row per candidate; already-contacted candidates are skipped.

        With reopen_lapsed, a candidate whose earlier offer expired or went
        stale gets that row reopened in the new round instead.
        """
        sql = _REOPEN_SQL if reopen_lapsed else _INSERT_SQL
        records: list[BroadcastRecord] = []
        for c in candidates:
            row = (
                await db.execute(
                    sql,
                    {
                        "order_id": order_id,
                        "kind": kind,
                        "candidate_id": c.party_id,
                        "round": round_no,
                        "distance_km": round(c.distance_km, 3),
                    },
                )
            ).fetchone()
            if row is not None:
                records.append(_row_to_record(row))
        return records

    async def get(
        self, db: AsyncSession, order_id: str, kind: str, candidate_id: str
    ) -> BroadcastRecord | None:
        row = (
            await db.execute(
                _GET_SQL,
                {"order_id": order_id, "kind": kind, "candidate_id": candidate_id},
            )
        ).fetchone()
        return _row_to_record(row) if row else None

    async def mark_response(
        self, db: AsyncSession, record_id: int, response: str
    ) -> bool:
        result = await db.execute(_MARK_RESPONSE_SQL, {"id": record_id, "response": response})
        return result.fetchone() is not None

    async def close_open(
        self, db: AsyncSession, order_id: str, kind: str | None, response: str
    ) -> int:
        result = await db.execute(
            _CLOSE_OPEN_SQL, {"order_id": order_id, "kind": kind, "response": response}
        )
        return int(result.rowcount or 0)

    async def withdraw_accepted(self, db: AsyncSession, order_id: str, kind: str) -> int:
        result = await db.execute(_WITHDRAW_ACCEPTED_SQL, {"order_id": order_id, "kind": kind})
        return int(result.rowcount or 0)

    async def current_round(self, db: AsyncSession, order_id: str, kind: str) -> int:
        result = await db.execute(_CURRENT_ROUND_SQL, {"order_id": order_id, "kind": kind})
        return int(result.scalar_one())

    async def round_counts(
        self, db: AsyncSession, order_id: str, kind: str, round_no: int
    ) -> tuple[int, int]:
        row = (
            await db.execute(
                _ROUND_COUNTS_SQL, {"order_id": order_id, "kind": kind, "round": round_no}
            )
        ).fetchone()
        if row is None:
            return 0, 0
        return int(row.open_count), int(row.accepted_count)

    async def contacted_ids(self, db: AsyncSession, order_id: str, kind: str) -> list[str]:
        rows = (await db.execute(_CONTACTED_SQL, {"order_id": order_id, "kind": kind})).fetchall()
        return [r.candidate_id for r in rows]

    async def declined_ids(self, db: AsyncSession, order_id: str, kind: str) -> list[str]:
        rows = (await db.execute(_DECLINED_SQL, {"order_id": order_id, "kind": kind})).fetchall()
        return [r.candidate_id for r in rows]

    async def expire_sent_before(
        self, db: AsyncSession, cutoff: datetime
    ) -> list[tuple[str, str]]:
        rows = (await db.execute(_EXPIRE_SQL, {"cutoff": cutoff})).fetchall()
        # Distinct (order_id, kind) pairs, first-seen order preserved
        return list(dict.fromkeys((r.order_id, r.kind) for r in rows))

    async def open_for_candidate(
        self,
        db: AsyncSession,
        candidate_id: str,
        kind: str | None,
        ref: str | None,
    ) -> list[BroadcastRecord]:
        prefix = f"{ref.lower()}%" if ref else None
        rows = (
            await db.execute(
                _OPEN_FOR_CANDIDATE_SQL,
                {"candidate_id": candidate_id, "kind": kind, "prefix": prefix},
            )
        ).fetchall()
        return [_row_to_record(r) for r in rows]

    async def closed_for_candidate(
        self,
        db: AsyncSession,
        candidate_id: str,
        kind: str | None,
        ref: str | None,
        response: str,
    ) -> list[BroadcastRecord]:
        prefix = f"{ref.lower()}%" if ref else None
        rows = (
            await db.execute(
                _CLOSED_FOR_CANDIDATE_SQL,
                {
                    "candidate_id": candidate_id,
                    "kind": kind,
                    "prefix": prefix,
                    "response": response,
                },
            )
        ).fetchall()
        return [_row_to_record(r) for r in rows]

    async def list_for_order(self, db: AsyncSession, order_id: str) -> list[BroadcastRecord]:
        rows = (await db.execute(_LIST_FOR_ORDER_SQL, {"order_id": order_id})).fetchall()
        return [_row_to_record(r) for r in rows]
