"""Unit tests for OrderStateMachine over in-memory repositories."""

import pytest

from src.js_common.enums import OrderStatus
from src.js_common.errors import (
    AlreadyResolvedError,
    InvalidTransitionError,
    OrderNotFoundError,
)
from src.js_order.application.state_machine import settlement_payouts
from src.js_wallet.domain.models import PLATFORM_PARTY_ID

S = OrderStatus
ORDER_ID = "0a1b2c3d-0000-0000-0000-000000000001"


@pytest.fixture
def matched(market):
    market.add_supplier("s", "6281100000010")
    market.add_courier("c", "6281100000020", is_busy=True)
    return market


class TestTransition:
    async def test_moves_and_records_history(self, market) -> None:
        market.seed_order()
        order = await market.state_machine.transition(
            market.db,
            ORDER_ID,
            S.WAITING_PAYMENT,
            expected=S.SEARCHING_SUPPLIER,
            changes={"supplier_id": "s", "shipping_cost": 0},
            reason="supplier delivers itself",
        )
        assert order.status == "waiting_payment"
        assert order.total_amount == 105000
        assert market.orders.history == [
            (ORDER_ID, "searching_supplier", "waiting_payment", "supplier delivers itself")
        ]

    async def test_illegal_move_leaves_row_untouched(self, market) -> None:
        market.seed_order(status="completed")
        with pytest.raises(InvalidTransitionError):
            await market.state_machine.transition(market.db, ORDER_ID, S.SHIPPING)
        assert market.order(ORDER_ID).status == "completed"
        assert market.orders.history == []

    async def test_stale_expectation_is_already_resolved(self, market) -> None:
        market.seed_order(status="waiting_payment")
        with pytest.raises(AlreadyResolvedError):
            await market.state_machine.transition(
                market.db, ORDER_ID, S.FAILED_NO_SUPPLIER, expected=S.SEARCHING_SUPPLIER
            )
        assert market.order(ORDER_ID).status == "waiting_payment"

    async def test_unknown_order(self, market) -> None:
        with pytest.raises(OrderNotFoundError):
            await market.state_machine.transition(market.db, "nope", S.CANCELLED_BY_BUYER)

    async def test_lock_unknown_order(self, market) -> None:
        with pytest.raises(OrderNotFoundError):
            await market.state_machine.lock(market.db, "nope")

    async def test_entry_timestamp_stamped(self, market) -> None:
        market.seed_order(supplier_id="s", status="searching_supplier")
        order = await market.state_machine.transition(
            market.db, ORDER_ID, S.NEGOTIATING_COURIER, changes={"shipping_cost": 16000}
        )
        assert order.negotiation_started_at is not None
        assert order.total_amount == 121000


class TestSideEffects:
    async def test_payment_funds_supplier_escrow(self, matched) -> None:
        matched.seed_order(status="waiting_payment", supplier_id="s")
        order = await matched.state_machine.transition(matched.db, ORDER_ID, S.PAID_HELD)
        assert order.paid_at is not None
        assert matched.wallets.wallets["s"].escrow_held == 105000

    async def test_completion_settles_and_frees_courier(self, matched) -> None:
        matched.seed_order(
            status="waiting_payment", supplier_id="s", courier_id="c",
            shipping_cost=16000, delivery_method="courier",
        )
        await matched.state_machine.transition(matched.db, ORDER_ID, S.PAID_HELD)
        await matched.state_machine.transition(matched.db, ORDER_ID, S.SHIPPING)
        await matched.state_machine.transition(matched.db, ORDER_ID, S.COMPLETED)

        wallets = matched.wallets.wallets
        assert wallets["s"].available == 100000
        assert wallets["c"].available == 16000
        assert wallets[PLATFORM_PARTY_ID].available == 5000
        assert wallets["s"].escrow_held == 0
        assert matched.wallets.order_net(ORDER_ID) == 0
        assert not matched.parties.parties["c"].is_busy

    async def test_refund_after_dispute(self, matched) -> None:
        matched.seed_order(status="waiting_payment", supplier_id="s", delivery_method="self")
        await matched.state_machine.transition(matched.db, ORDER_ID, S.PAID_HELD)
        await matched.state_machine.transition(matched.db, ORDER_ID, S.SHIPPING)
        await matched.state_machine.transition(matched.db, ORDER_ID, S.DISPUTE_CHECK)
        order = await matched.state_machine.transition(matched.db, ORDER_ID, S.REFUNDED)

        assert order.resolved_at is not None
        assert matched.wallets.wallets["buyer"].available == 105000
        assert matched.wallets.wallets["s"].escrow_held == 0
        assert matched.wallets.order_net(ORDER_ID) == 0

    async def test_escrow_needs_a_supplier(self, market) -> None:
        market.seed_order(status="waiting_payment")
        with pytest.raises(InvalidTransitionError):
            await market.state_machine.transition(market.db, ORDER_ID, S.PAID_HELD)


class TestSettlementPayouts:
    def test_courier_order(self, market) -> None:
        order = market.seed_order(supplier_id="s", courier_id="c", shipping_cost=16000)
        payouts = settlement_payouts(order)
        assert [(p.party_id, p.amount, p.entry_type) for p in payouts] == [
            ("s", 100000, "payout"),
            ("c", 16000, "payout"),
            (PLATFORM_PARTY_ID, 5000, "commission_in"),
        ]
        assert sum(p.amount for p in payouts) == order.total_amount

    def test_self_delivery_has_no_courier_line(self, market) -> None:
        order = market.seed_order(supplier_id="s", delivery_method="self")
        assert [p.party_id for p in settlement_payouts(order)] == ["s", PLATFORM_PARTY_ID]
