"""Admin application service: dispute resolution and maintenance jobs."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.js_common.enums import OrderStatus
from src.js_notify.application import templates
from src.js_notify.application.dispatcher import NotificationDispatcher, get_dispatcher
from src.js_notify.domain.models import OutboundMessage
from src.js_order.application.schemas import OrderResponse
from src.js_order.application.service import OrderWorkflowService
from src.js_order.application.state_machine import OrderStateMachine
from src.js_party.domain.repository import PartyRepositoryProtocol
from src.js_party.infrastructure.persistence import PartyRepository
from src.js_wallet.domain.invariants import verify_ledger_invariants

logger = logging.getLogger(__name__)

# Admin decision -> terminal status of a disputed order.
DISPUTE_OUTCOMES: dict[str, OrderStatus] = {
    "refund": OrderStatus.REFUNDED,
    "complete": OrderStatus.COMPLETED,
}


class AdminService:
    def __init__(
        self,
        state_machine: OrderStateMachine | None = None,
        workflow: OrderWorkflowService | None = None,
        parties: PartyRepositoryProtocol | None = None,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        self._sm = state_machine or OrderStateMachine()
        self._workflow = workflow or OrderWorkflowService(state_machine=self._sm)
        self._parties: PartyRepositoryProtocol = parties or PartyRepository()
        self._dispatcher = dispatcher

    def _notifier(self) -> NotificationDispatcher:
        return self._dispatcher or get_dispatcher()

    async def resolve_dispute(
        self, db: AsyncSession, order_id: str, outcome: str, note: str | None = None
    ) -> OrderResponse:
        """Close a dispute: refund the buyer or pay out as if receipt was confirmed."""
        target = DISPUTE_OUTCOMES.get(outcome)
        if target is None:
            raise ValueError(f"unknown dispute outcome {outcome!r}")
        try:
            await self._sm.lock(db, order_id)
            order = await self._sm.transition(
                db,
                order_id,
                target,
                expected=OrderStatus.DISPUTE_CHECK,
                reason=note or f"dispute resolved: {outcome}",
            )
            label = "refunded to the buyer" if target == OrderStatus.REFUNDED else "paid out"
            messages: list[OutboundMessage] = []
            for party_id in (order.buyer_id, order.supplier_id, order.courier_id):
                party = await self._parties.get_by_id(db, party_id) if party_id else None
                if party is not None:
                    messages.append(
                        OutboundMessage(
                            phone=party.phone,
                            text=templates.dispute_resolved(order.id, label),
                            order_id=order.id,
                            purpose="dispute_resolved",
                        )
                    )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("Dispute on order %s resolved: %s", order_id, outcome)
        await self._notifier().dispatch(messages)
        return OrderResponse.from_domain(order)

    async def expire_offers(self, db: AsyncSession) -> dict[str, int]:
        return await self._workflow.expire_offers(db)

    async def retry_notifications(self, db: AsyncSession, limit: int = 50) -> dict[str, int]:
        try:
            stats = await self._notifier().retry_pending(db, limit)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return stats

    async def verify_invariants(self, db: AsyncSession) -> dict[str, Any]:
        violations = await verify_ledger_invariants(db)
        return {"ok": not violations, "violations": violations}
