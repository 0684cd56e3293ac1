"""OrderStateMachine — the only writer of orders.status.

transition() validates the move against the transition table, performs a
conditional UPDATE keyed on the expected prior status, appends to
order_status_history and runs the bookkeeping side effects of the target
status, all inside the caller's transaction:

    waiting_payment      total_amount locked (recomputed from its addends)
    negotiating_courier  negotiation_started_at stamped
    paid_held            escrow hold of total_amount (buyer -> supplier escrow)
    shipping             pickup_at stamped
    delivered            delivered_at stamped, courier busy flag cleared
    completed            escrow settled to supplier / courier / platform,
                         courier busy flag cleared
    refunded             escrow refunded to the buyer, courier flag cleared
    cancelled_by_buyer   courier flag cleared

Notifications and follow-up searches are NOT side effects here; they are
orchestrated by OrderWorkflowService after commit.
"""

import dataclasses
import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.js_common.datetime_utils import utc_now
from src.js_common.enums import LedgerEntryType, OrderStatus
from src.js_common.errors import (
    AlreadyResolvedError,
    InvalidTransitionError,
    OrderNotFoundError,
)
from src.js_order.domain.models import Order
from src.js_order.domain.repository import OrderRepositoryProtocol
from src.js_order.domain.transitions import can_transition
from src.js_order.infrastructure.persistence import OrderRepository
from src.js_party.application.capacity import CapacityGuard
from src.js_wallet.application.ledger import WalletLedger
from src.js_wallet.domain.models import PLATFORM_PARTY_ID, Payout

logger = logging.getLogger(__name__)

S = OrderStatus

# Timestamp column stamped when an order enters the status.
_ENTRY_STAMPS: dict[OrderStatus, str] = {
    S.NEGOTIATING_COURIER: "negotiation_started_at",
    S.PAID_HELD: "paid_at",
    S.SHIPPING: "pickup_at",
    S.DELIVERED: "delivered_at",
    S.DISPUTE_CHECK: "disputed_at",
}

_COURIER_RELEASING: frozenset[OrderStatus] = frozenset({
    S.DELIVERED, S.COMPLETED, S.REFUNDED, S.CANCELLED_BY_BUYER,
})


class OrderStateMachine:
    def __init__(
        self,
        repo: OrderRepositoryProtocol | None = None,
        ledger: WalletLedger | None = None,
        capacity: CapacityGuard | None = None,
    ) -> None:
        self._repo: OrderRepositoryProtocol = repo or OrderRepository()
        self._ledger = ledger or WalletLedger()
        self._capacity = capacity or CapacityGuard()

    async def lock(self, db: AsyncSession, order_id: str) -> Order:
        """SELECT ... FOR UPDATE; serializes concurrent work on one order."""
        order = await self._repo.get_for_update(db, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def transition(
        self,
        db: AsyncSession,
        order_id: str,
        target: OrderStatus,
        *,
        expected: OrderStatus | None = None,
        changes: dict[str, Any] | None = None,
        reason: str | None = None,
    ) -> Order:
        """Move an order to `target`. The caller commits.

        Raises:
            OrderNotFoundError: no such order.
            InvalidTransitionError: the move is not in the transition table
                (the row is left untouched).
            AlreadyResolvedError: the order is no longer in `expected`,
                i.e. a concurrent transition won.
        """
        current = await self._repo.get_by_id(db, order_id)
        if current is None:
            raise OrderNotFoundError(order_id)

        source = expected.value if expected is not None else current.status
        if not can_transition(source, target.value):
            raise InvalidTransitionError(order_id, source, target.value)
        if current.status != source:
            raise AlreadyResolvedError(order_id, f"order is already {current.status}")

        projected = dataclasses.replace(current).apply(changes or {})
        update = dict(changes or {})
        stamp = _ENTRY_STAMPS.get(target)
        if stamp and stamp not in update:
            update[stamp] = utc_now()
        if source == S.DISPUTE_CHECK.value:
            update.setdefault("resolved_at", utc_now())
        update["total_amount"] = projected.total_amount

        updated = await self._repo.compare_and_set(db, order_id, source, target.value, update)
        if updated is None:
            latest = await self._repo.get_by_id(db, order_id)
            if latest is None:
                raise OrderNotFoundError(order_id)
            raise AlreadyResolvedError(order_id, f"order is already {latest.status}")

        await self._repo.record_transition(db, order_id, source, target.value, reason)
        await self._apply_side_effects(db, updated, target)
        logger.info("Order %s: %s -> %s (%s)", order_id, source, target.value, reason or "-")
        return updated

    async def _apply_side_effects(
        self, db: AsyncSession, order: Order, target: OrderStatus
    ) -> None:
        if target == S.PAID_HELD:
            await self._ledger.hold(
                db, order.id, order.buyer_id, _holder(order), order.total_amount
            )
        elif target == S.COMPLETED:
            await self._ledger.settle(db, order.id, _holder(order), settlement_payouts(order))
        elif target == S.REFUNDED:
            held = await self._ledger.held_for_order(db, order.id, _holder(order))
            await self._ledger.refund(db, order.id, _holder(order), order.buyer_id, held)

        if target in _COURIER_RELEASING:
            await self._capacity.release_courier(db, order.courier_id)


def _holder(order: Order) -> str:
    if not order.supplier_id:
        raise InvalidTransitionError(order.id, order.status, "escrow without supplier")
    return order.supplier_id


def settlement_payouts(order: Order) -> list[Payout]:
    """Supplier gets the goods price, courier the shipping, platform the fee."""
    payouts = [Payout(_holder(order), order.buyer_price)]
    if order.courier_id and order.shipping_cost:
        payouts.append(Payout(order.courier_id, order.shipping_cost))
    if order.service_fee:
        payouts.append(
            Payout(PLATFORM_PARTY_ID, order.service_fee, LedgerEntryType.COMMISSION_IN.value)
        )
    return payouts
