"""BroadcastRepository Protocol."""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.js_broadcast.domain.models import BroadcastRecord
from src.js_party.domain.models import NearbyCandidate


class BroadcastRepositoryProtocol(Protocol):
    async def insert_records(
        self,
        db: AsyncSession,
        order_id: str,
        kind: str,
        round_no: int,
        candidates: list[NearbyCandidate],
        reopen_lapsed: bool = False,
    ) -> list[BroadcastRecord]: ...

    async def get(
        self, db: AsyncSession, order_id: str, kind: str, candidate_id: str
    ) -> BroadcastRecord | None: ...

    async def mark_response(
        self, db: AsyncSession, record_id: int, response: str
    ) -> bool: ...

    async def close_open(
        self, db: AsyncSession, order_id: str, kind: str | None, response: str
    ) -> int: ...

    async def withdraw_accepted(self, db: AsyncSession, order_id: str, kind: str) -> int: ...

    async def current_round(self, db: AsyncSession, order_id: str, kind: str) -> int: ...

    async def round_counts(
        self, db: AsyncSession, order_id: str, kind: str, round_no: int
    ) -> tuple[int, int]: ...

    async def contacted_ids(self, db: AsyncSession, order_id: str, kind: str) -> list[str]: ...

    async def declined_ids(self, db: AsyncSession, order_id: str, kind: str) -> list[str]: ...

    async def expire_sent_before(
        self, db: AsyncSession, cutoff: datetime
    ) -> list[tuple[str, str]]: ...

    async def open_for_candidate(
        self,
        db: AsyncSession,
        candidate_id: str,
        kind: str | None,
        ref: str | None,
    ) -> list[BroadcastRecord]: ...

    async def closed_for_candidate(
        self,
        db: AsyncSession,
        candidate_id: str,
        kind: str | None,
        ref: str | None,
        response: str,
    ) -> list[BroadcastRecord]: ...

    async def list_for_order(self, db: AsyncSession, order_id: str) -> list[BroadcastRecord]: ...
