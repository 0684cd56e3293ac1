"""BroadcastCoordinator — fan an order out to N candidates, first yes wins.

broadcast() writes one BroadcastRecord per candidate and builds one offer
message each. record_response() resolves answers:

  accept  capacity check (supplier lock + count / courier busy flag), then a
          compare-and-swap transition of the order out of its pre-match
          status. Exactly one acceptance can win that swap; the loser gets
          AlreadyResolvedError and nothing it did survives the rollback.
          The winner's record becomes `accepted`, every other open record
          of the same kind becomes `stale`.
  reject  recorded once (`WHERE response IS NULL`). The order row is locked
          first so the "was that the last open offer?" count is serialized;
          when the current round has no open and no accepted offers the
          order moves to its exhausted status exactly once.

All work happens in the caller's transaction; messages are returned for
post-commit dispatch.
"""

import logging
from collections.abc import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from src.js_broadcast.domain.models import (
    AcceptTerms,
    BroadcastBatch,
    BroadcastRecord,
    OutcomeKind,
    ResolutionOutcome,
)
from src.js_broadcast.domain.repository import BroadcastRepositoryProtocol
from src.js_broadcast.infrastructure.persistence import BroadcastRepository
from src.js_common.datetime_utils import minutes_ago
from src.js_common.enums import BroadcastKind, BroadcastResponse
from src.js_common.errors import AlreadyResolvedError, BroadcastNotFoundError
from src.js_notify.domain.models import OutboundMessage
from src.js_order.application.state_machine import OrderStateMachine
from src.js_order.domain.models import Order
from src.js_order.domain.transitions import EXHAUSTED_STATUS, PRE_MATCH_STATUS
from src.js_party.application.capacity import CapacityGuard
from src.js_party.domain.models import NearbyCandidate

logger = logging.getLogger(__name__)

OfferComposer = Callable[[NearbyCandidate], str]


class BroadcastCoordinator:
    def __init__(
        self,
        repo: BroadcastRepositoryProtocol | None = None,
        state_machine: OrderStateMachine | None = None,
        capacity: CapacityGuard | None = None,
    ) -> None:
        self._repo: BroadcastRepositoryProtocol = repo or BroadcastRepository()
        self._sm = state_machine or OrderStateMachine()
        self._capacity = capacity or CapacityGuard()

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    async def broadcast(
        self,
        db: AsyncSession,
        order: Order,
        kind: BroadcastKind,
        candidates: list[NearbyCandidate],
        compose: OfferComposer,
        round_no: int | None = None,
        reopen_lapsed: bool = False,
    ) -> BroadcastBatch:
        """Record and compose one offer per candidate not contacted before.

        reopen_lapsed also re-offers to candidates whose earlier offer
        expired or went stale.
        """
        if round_no is None:
            round_no = await self._repo.current_round(db, order.id, kind.value) + 1
        records = await self._repo.insert_records(
            db, order.id, kind.value, round_no, candidates, reopen_lapsed
        )
        by_id = {c.party_id: c for c in candidates}
        messages = [
            OutboundMessage(
                phone=by_id[r.candidate_id].phone,
                text=compose(by_id[r.candidate_id]),
                order_id=order.id,
                purpose=f"{kind.value}_offer",
            )
            for r in records
        ]
        logger.info(
            "Broadcast order=%s kind=%s round=%d -> %d candidate(s)",
            order.id,
            kind.value,
            round_no,
            len(records),
        )
        return BroadcastBatch(
            order_id=order.id, kind=kind.value, round=round_no, records=records, messages=messages
        )

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    async def record_response(
        self,
        db: AsyncSession,
        order_id: str,
        kind: BroadcastKind,
        candidate_id: str,
        accepted: bool,
        terms: AcceptTerms | None = None,
    ) -> ResolutionOutcome:
        record = await self._repo.get(db, order_id, kind.value, candidate_id)
        if record is None:
            raise BroadcastNotFoundError(order_id, candidate_id)
        if accepted:
            if terms is None:
                raise ValueError("an acceptance needs AcceptTerms")
            return await self._accept(db, record, kind, terms)
        return await self._reject(db, record, kind)

    async def _accept(
        self,
        db: AsyncSession,
        record: BroadcastRecord,
        kind: BroadcastKind,
        terms: AcceptTerms,
    ) -> ResolutionOutcome:
        if record.response == BroadcastResponse.ACCEPTED:
            return self._outcome(OutcomeKind.DUPLICATE, record)
        if record.response is not None:
            raise AlreadyResolvedError(record.order_id, f"offer is {record.response}")

        if kind == BroadcastKind.SUPPLIER:
            await self._capacity.reserve_supplier(db, record.candidate_id)
        else:
            await self._capacity.reserve_courier(db, record.candidate_id)

        order = await self._sm.transition(
            db,
            record.order_id,
            terms.target,
            expected=PRE_MATCH_STATUS[kind],
            changes=terms.changes,
            reason=terms.reason or f"{kind.value} {record.candidate_id} accepted",
        )
        if not await self._repo.mark_response(db, record.id, BroadcastResponse.ACCEPTED.value):
            raise AlreadyResolvedError(record.order_id)
        stale = await self._repo.close_open(
            db, record.order_id, kind.value, BroadcastResponse.STALE.value
        )
        logger.info(
            "Order %s matched %s %s (%d other offer(s) closed)",
            record.order_id,
            kind.value,
            record.candidate_id,
            stale,
        )
        return self._outcome(OutcomeKind.MATCHED, record, order)

    async def _reject(
        self, db: AsyncSession, record: BroadcastRecord, kind: BroadcastKind
    ) -> ResolutionOutcome:
        order = await self._sm.lock(db, record.order_id)
        if not await self._repo.mark_response(db, record.id, BroadcastResponse.REJECTED.value):
            return self._outcome(OutcomeKind.DUPLICATE, record, order)
        exhausted = await self.exhaust_if_done(db, order, kind, reason="all candidates declined")
        if exhausted is not None:
            return self._outcome(OutcomeKind.EXHAUSTED, record, exhausted)
        return self._outcome(OutcomeKind.REJECTION_RECORDED, record, order)

    async def round_is_exhausted(
        self, db: AsyncSession, order_id: str, kind: BroadcastKind
    ) -> bool:
        round_no = await self._repo.current_round(db, order_id, kind.value)
        open_count, accepted_count = await self._repo.round_counts(
            db, order_id, kind.value, round_no
        )
        return open_count == 0 and accepted_count == 0

    async def exhaust_if_done(
        self,
        db: AsyncSession,
        order: Order,
        kind: BroadcastKind,
        reason: str,
    ) -> Order | None:
        """Move a still-unmatched order to its exhausted status once nobody is left.

        The caller must hold the order row lock (OrderStateMachine.lock).
        """
        if order.status != PRE_MATCH_STATUS[kind].value:
            return None
        if not await self.round_is_exhausted(db, order.id, kind):
            return None
        return await self.exhaust(db, order.id, kind, reason)

    async def exhaust(
        self, db: AsyncSession, order_id: str, kind: BroadcastKind, reason: str
    ) -> Order:
        order = await self._sm.transition(
            db,
            order_id,
            EXHAUSTED_STATUS[kind],
            expected=PRE_MATCH_STATUS[kind],
            reason=reason,
        )
        await self._repo.close_open(db, order_id, kind.value, BroadcastResponse.STALE.value)
        return order

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    async def close_all(self, db: AsyncSession, order_id: str) -> int:
        """Cancel path: every open offer of any kind becomes stale."""
        return await self._repo.close_open(db, order_id, None, BroadcastResponse.STALE.value)

    async def withdraw_accepted(self, db: AsyncSession, order_id: str, kind: BroadcastKind) -> int:
        return await self._repo.withdraw_accepted(db, order_id, kind.value)

    async def expire_offers(self, db: AsyncSession, ttl_minutes: int) -> list[tuple[str, str]]:
        """Mark unanswered offers older than the TTL as expired.

        Returns the distinct (order_id, kind) pairs that lost an open offer;
        the caller decides whether each round is now exhausted.
        """
        affected = await self._repo.expire_sent_before(db, minutes_ago(ttl_minutes))
        if affected:
            logger.info("Expired offers on %d order round(s)", len(affected))
        return affected

    async def contacted_ids(self, db: AsyncSession, order_id: str, kind: BroadcastKind) -> list[str]:
        return await self._repo.contacted_ids(db, order_id, kind.value)

    async def declined_ids(self, db: AsyncSession, order_id: str, kind: BroadcastKind) -> list[str]:
        return await self._repo.declined_ids(db, order_id, kind.value)

    async def current_round(self, db: AsyncSession, order_id: str, kind: BroadcastKind) -> int:
        return await self._repo.current_round(db, order_id, kind.value)

    async def open_offers_for(
        self,
        db: AsyncSession,
        candidate_id: str,
        kind: BroadcastKind | None = None,
        ref: str | None = None,
    ) -> list[BroadcastRecord]:
        return await self._repo.open_for_candidate(
            db, candidate_id, kind.value if kind else None, ref
        )

    async def taken_offers_for(
        self,
        db: AsyncSession,
        candidate_id: str,
        kind: BroadcastKind | None = None,
        ref: str | None = None,
    ) -> list[BroadcastRecord]:
        """Offers to this candidate that were closed because the order moved on."""
        return await self._repo.closed_for_candidate(
            db, candidate_id, kind.value if kind else None, ref, BroadcastResponse.STALE.value
        )

    async def list_for_order(self, db: AsyncSession, order_id: str) -> list[BroadcastRecord]:
        return await self._repo.list_for_order(db, order_id)

    @staticmethod
    def _outcome(
        kind: OutcomeKind, record: BroadcastRecord, order: Order | None = None
    ) -> ResolutionOutcome:
        return ResolutionOutcome(
            kind=kind,
            order_id=record.order_id,
            broadcast_kind=record.kind,
            candidate_id=record.candidate_id,
            order=order,
        )
