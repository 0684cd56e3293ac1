"""Unit tests for BroadcastCoordinator: first yes wins, last no exhausts once."""

import asyncio

import pytest

from src.js_broadcast.domain.models import AcceptTerms, OutcomeKind
from src.js_common.enums import BroadcastKind, OrderStatus
from src.js_common.errors import (
    AlreadyResolvedError,
    BroadcastNotFoundError,
    CapacityExceededError,
)
from src.js_party.domain.models import NearbyCandidate

S = OrderStatus
SUPPLIER = BroadcastKind.SUPPLIER
COURIER = BroadcastKind.COURIER
ORDER_ID = "0a1b2c3d-0000-0000-0000-000000000001"


def _candidates(market, *party_ids: str) -> list[NearbyCandidate]:
    return [
        NearbyCandidate(pid, market.parties.parties[pid].phone, pid, 1.0 + i)
        for i, pid in enumerate(party_ids)
    ]


def _self_delivery(supplier_id: str) -> AcceptTerms:
    return AcceptTerms(
        S.WAITING_PAYMENT,
        {"supplier_id": supplier_id, "delivery_method": "self", "shipping_cost": 0},
    )


@pytest.fixture
async def offered(market):
    """Order searching_supplier with offers out to s1 and s2."""
    market.add_supplier("s1", "6281100000011")
    market.add_supplier("s2", "6281100000012")
    order = market.seed_order()
    await market.coordinator.broadcast(
        market.db, order, SUPPLIER, _candidates(market, "s1", "s2"), lambda c: f"offer {c.party_id}"
    )
    return market


class TestBroadcast:
    async def test_one_record_and_message_per_candidate(self, market) -> None:
        market.add_supplier("s1", "6281100000011")
        market.add_supplier("s2", "6281100000012")
        order = market.seed_order()
        batch = await market.coordinator.broadcast(
            market.db, order, SUPPLIER, _candidates(market, "s1", "s2"), lambda c: f"hi {c.name}"
        )
        assert batch.round == 1
        assert [r.candidate_id for r in batch.records] == ["s1", "s2"]
        assert [(m.phone, m.text, m.purpose) for m in batch.messages] == [
            ("6281100000011", "hi s1", "supplier_offer"),
            ("6281100000012", "hi s2", "supplier_offer"),
        ]

    async def test_rebroadcast_skips_contacted_and_bumps_round(self, offered) -> None:
        offered.add_supplier("s3", "6281100000013")
        batch = await offered.coordinator.broadcast(
            offered.db,
            offered.order(ORDER_ID),
            SUPPLIER,
            _candidates(offered, "s1", "s3"),
            lambda c: "again",
        )
        assert batch.round == 2
        assert [r.candidate_id for r in batch.records] == ["s3"]
        assert len(batch.messages) == 1
        assert await offered.coordinator.contacted_ids(offered.db, ORDER_ID, SUPPLIER) == [
            "s1", "s2", "s3",
        ]


class TestAccept:
    async def test_first_acceptance_wins(self, offered) -> None:
        outcome = await offered.coordinator.record_response(
            offered.db, ORDER_ID, SUPPLIER, "s1", True, _self_delivery("s1")
        )
        assert outcome.kind == OutcomeKind.MATCHED
        assert outcome.order is not None and outcome.order.status == "waiting_payment"
        responses = {r.candidate_id: r.response for r in offered.broadcasts.records}
        assert responses == {"s1": "accepted", "s2": "stale"}

    async def test_concurrent_acceptances_have_one_winner(self, offered) -> None:
        results = await asyncio.gather(
            offered.coordinator.record_response(
                offered.db, ORDER_ID, SUPPLIER, "s1", True, _self_delivery("s1")
            ),
            offered.coordinator.record_response(
                offered.db, ORDER_ID, SUPPLIER, "s2", True, _self_delivery("s2")
            ),
            return_exceptions=True,
        )
        matched = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(matched) == 1 and matched[0].kind == OutcomeKind.MATCHED
        assert len(losers) == 1 and isinstance(losers[0], AlreadyResolvedError)
        assert offered.order(ORDER_ID).supplier_id == matched[0].candidate_id
        assert offered.orders.transitions_to(ORDER_ID, "waiting_payment") == 1

    async def test_late_acceptance_after_match(self, offered) -> None:
        await offered.coordinator.record_response(
            offered.db, ORDER_ID, SUPPLIER, "s1", True, _self_delivery("s1")
        )
        with pytest.raises(AlreadyResolvedError):
            await offered.coordinator.record_response(
                offered.db, ORDER_ID, SUPPLIER, "s2", True, _self_delivery("s2")
            )

    async def test_repeated_acceptance_is_duplicate(self, offered) -> None:
        await offered.coordinator.record_response(
            offered.db, ORDER_ID, SUPPLIER, "s1", True, _self_delivery("s1")
        )
        again = await offered.coordinator.record_response(
            offered.db, ORDER_ID, SUPPLIER, "s1", True, _self_delivery("s1")
        )
        assert again.kind == OutcomeKind.DUPLICATE
        assert offered.orders.transitions_to(ORDER_ID, "waiting_payment") == 1

    async def test_acceptance_after_own_rejection_refused(self, offered) -> None:
        await offered.coordinator.record_response(offered.db, ORDER_ID, SUPPLIER, "s1", False)
        with pytest.raises(AlreadyResolvedError):
            await offered.coordinator.record_response(
                offered.db, ORDER_ID, SUPPLIER, "s1", True, _self_delivery("s1")
            )

    async def test_supplier_at_capacity_cannot_accept(self, offered) -> None:
        offered.parties.active_orders["s1"] = 3
        with pytest.raises(CapacityExceededError):
            await offered.coordinator.record_response(
                offered.db, ORDER_ID, SUPPLIER, "s1", True, _self_delivery("s1")
            )
        assert offered.order(ORDER_ID).status == "searching_supplier"
        assert all(r.response is None for r in offered.broadcasts.records)

    async def test_busy_courier_cannot_accept(self, market) -> None:
        market.add_courier("c1", "6281100000021", is_busy=True)
        order = market.seed_order(status="negotiating_courier", supplier_id="s")
        await market.coordinator.broadcast(
            market.db, order, COURIER, _candidates(market, "c1"), lambda c: "job"
        )
        with pytest.raises(CapacityExceededError):
            await market.coordinator.record_response(
                market.db, ORDER_ID, COURIER, "c1", True,
                AcceptTerms(S.WAITING_PAYMENT, {"courier_id": "c1"}),
            )

    async def test_courier_acceptance_marks_busy(self, market) -> None:
        courier = market.add_courier("c1", "6281100000021")
        order = market.seed_order(status="negotiating_courier", supplier_id="s")
        await market.coordinator.broadcast(
            market.db, order, COURIER, _candidates(market, "c1"), lambda c: "job"
        )
        outcome = await market.coordinator.record_response(
            market.db, ORDER_ID, COURIER, "c1", True,
            AcceptTerms(S.WAITING_PAYMENT, {"courier_id": "c1"}),
        )
        assert outcome.kind == OutcomeKind.MATCHED
        assert courier.is_busy

    async def test_no_offer_sent(self, offered) -> None:
        offered.add_supplier("s9", "6281100000019")
        with pytest.raises(BroadcastNotFoundError):
            await offered.coordinator.record_response(
                offered.db, ORDER_ID, SUPPLIER, "s9", True, _self_delivery("s9")
            )

    async def test_acceptance_needs_terms(self, offered) -> None:
        with pytest.raises(ValueError):
            await offered.coordinator.record_response(offered.db, ORDER_ID, SUPPLIER, "s1", True)


class TestReject:
    async def test_rejection_recorded_while_others_open(self, offered) -> None:
        outcome = await offered.coordinator.record_response(
            offered.db, ORDER_ID, SUPPLIER, "s1", False
        )
        assert outcome.kind == OutcomeKind.REJECTION_RECORDED
        assert offered.order(ORDER_ID).status == "searching_supplier"

    async def test_last_rejection_exhausts_once(self, offered) -> None:
        await offered.coordinator.record_response(offered.db, ORDER_ID, SUPPLIER, "s1", False)
        outcome = await offered.coordinator.record_response(
            offered.db, ORDER_ID, SUPPLIER, "s2", False
        )
        assert outcome.kind == OutcomeKind.EXHAUSTED
        assert offered.order(ORDER_ID).status == "failed_no_supplier"

        again = await offered.coordinator.record_response(
            offered.db, ORDER_ID, SUPPLIER, "s2", False
        )
        assert again.kind == OutcomeKind.DUPLICATE
        assert offered.orders.transitions_to(ORDER_ID, "failed_no_supplier") == 1

    async def test_concurrent_last_rejections_exhaust_once(self, offered) -> None:
        outcomes = await asyncio.gather(
            offered.coordinator.record_response(offered.db, ORDER_ID, SUPPLIER, "s1", False),
            offered.coordinator.record_response(offered.db, ORDER_ID, SUPPLIER, "s2", False),
        )
        kinds = sorted(o.kind.value for o in outcomes)
        assert kinds == ["exhausted", "rejection_recorded"]
        assert offered.orders.transitions_to(ORDER_ID, "failed_no_supplier") == 1

    async def test_rejection_after_match_does_not_exhaust(self, offered) -> None:
        await offered.coordinator.record_response(
            offered.db, ORDER_ID, SUPPLIER, "s1", True, _self_delivery("s1")
        )
        outcome = await offered.coordinator.record_response(
            offered.db, ORDER_ID, SUPPLIER, "s2", False
        )
        assert outcome.kind == OutcomeKind.DUPLICATE
        assert offered.order(ORDER_ID).status == "waiting_payment"

    async def test_courier_exhaustion_means_stuck(self, market) -> None:
        market.add_courier("c1", "6281100000021")
        order = market.seed_order(status="negotiating_courier", supplier_id="s")
        await market.coordinator.broadcast(
            market.db, order, COURIER, _candidates(market, "c1"), lambda c: "job"
        )
        outcome = await market.coordinator.record_response(
            market.db, ORDER_ID, COURIER, "c1", False
        )
        assert outcome.kind == OutcomeKind.EXHAUSTED
        assert market.order(ORDER_ID).status == "stuck_no_courier"


class TestHousekeeping:
    async def test_expire_old_offers(self, offered) -> None:
        offered.broadcasts.backdate(31)
        affected = await offered.coordinator.expire_offers(offered.db, 30)
        assert affected == [(ORDER_ID, "supplier")]
        assert {r.response for r in offered.broadcasts.records} == {"expired"}
        assert await offered.coordinator.round_is_exhausted(offered.db, ORDER_ID, SUPPLIER)

    async def test_fresh_offers_do_not_expire(self, offered) -> None:
        assert await offered.coordinator.expire_offers(offered.db, 30) == []

    async def test_close_all_on_cancel(self, offered) -> None:
        assert await offered.coordinator.close_all(offered.db, ORDER_ID) == 2
        assert await offered.coordinator.open_offers_for(offered.db, "s1") == []

    async def test_withdraw_accepted(self, offered) -> None:
        await offered.coordinator.record_response(
            offered.db, ORDER_ID, SUPPLIER, "s1", True, _self_delivery("s1")
        )
        assert await offered.coordinator.withdraw_accepted(offered.db, ORDER_ID, SUPPLIER) == 1
        records = await offered.coordinator.list_for_order(offered.db, ORDER_ID)
        assert records[0].response == "withdrawn"

    async def test_open_offers_by_reference(self, offered) -> None:
        offers = await offered.coordinator.open_offers_for(offered.db, "s1", SUPPLIER, "0a1b2c")
        assert [o.order_id for o in offers] == [ORDER_ID]
        assert await offered.coordinator.open_offers_for(offered.db, "s1", SUPPLIER, "ffff") == []

    async def test_taken_offers_are_the_stale_ones(self, offered) -> None:
        await offered.coordinator.record_response(
            offered.db, ORDER_ID, SUPPLIER, "s1", True, _self_delivery("s1")
        )
        taken = await offered.coordinator.taken_offers_for(offered.db, "s2", SUPPLIER, "0a1b2c")
        assert [(o.order_id, o.response) for o in taken] == [(ORDER_ID, "stale")]
        assert await offered.coordinator.taken_offers_for(offered.db, "s1", SUPPLIER) == []

    async def test_reopen_asks_lapsed_candidates_again(self, offered) -> None:
        await offered.coordinator.record_response(offered.db, ORDER_ID, SUPPLIER, "s1", False)
        offered.broadcasts.backdate(31)
        await offered.coordinator.expire_offers(offered.db, 30)

        batch = await offered.coordinator.broadcast(
            offered.db,
            offered.order(ORDER_ID),
            SUPPLIER,
            _candidates(offered, "s1", "s2"),
            lambda c: "again",
            reopen_lapsed=True,
        )

        assert batch.round == 2
        assert [(r.candidate_id, r.response) for r in batch.records] == [("s2", None)]
        assert await offered.coordinator.declined_ids(offered.db, ORDER_ID, SUPPLIER) == ["s1"]
        assert len(offered.broadcasts.records) == 2
