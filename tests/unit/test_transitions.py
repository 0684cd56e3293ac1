"""Unit tests for the order status transition table and Order model."""

import pytest

from src.js_common.enums import BroadcastKind, OrderStatus
from src.js_order.domain.models import Order
from src.js_order.domain.transitions import (
    ALLOWED,
    CANCELLABLE_STATUSES,
    EXHAUSTED_STATUS,
    PRE_MATCH_STATUS,
    TERMINAL_STATUSES,
    can_transition,
)

S = OrderStatus


def _order(**kwargs: object) -> Order:
    fields: dict = {
        "id": "o-1",
        "buyer_id": "b",
        "product_name": "Gula",
        "quantity": 5,
        "unit": "kg",
        "weight_kg": 5.0,
        "buyer_price": 100000,
        "service_fee": 5000,
        "delivery_latitude": -6.2,
        "delivery_longitude": 106.8,
        "delivery_address": "Jl. A",
    }
    fields.update(kwargs)
    return Order(**fields)


class TestTable:
    def test_every_status_has_an_entry(self) -> None:
        assert set(ALLOWED) == set(OrderStatus)

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (S.SEARCHING_SUPPLIER, S.WAITING_PAYMENT),
            (S.SEARCHING_SUPPLIER, S.NEGOTIATING_COURIER),
            (S.SEARCHING_SUPPLIER, S.WAITING_BUYER_APPROVAL),
            (S.WAITING_BUYER_APPROVAL, S.SEARCHING_SUPPLIER),
            (S.NEGOTIATING_COURIER, S.STUCK_NO_COURIER),
            (S.STUCK_NO_COURIER, S.WAITING_PAYMENT),
            (S.WAITING_PAYMENT, S.PAID_HELD),
            (S.PAID_HELD, S.SHIPPING),
            (S.SHIPPING, S.DELIVERED),
            (S.DELIVERED, S.COMPLETED),
            (S.DISPUTE_CHECK, S.REFUNDED),
        ],
    )
    def test_allowed(self, current: OrderStatus, target: OrderStatus) -> None:
        assert can_transition(current.value, target.value)

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (S.COMPLETED, S.SHIPPING),
            (S.SEARCHING_SUPPLIER, S.PAID_HELD),
            (S.PAID_HELD, S.CANCELLED_BY_BUYER),
            (S.FAILED_NO_SUPPLIER, S.SEARCHING_SUPPLIER),
            (S.SHIPPING, S.REFUNDED),
        ],
    )
    def test_forbidden(self, current: OrderStatus, target: OrderStatus) -> None:
        assert not can_transition(current.value, target.value)

    def test_unknown_status_is_not_a_transition(self) -> None:
        assert not can_transition("bogus", "completed")
        assert not can_transition("searching_supplier", "bogus")

    def test_terminal_statuses(self) -> None:
        assert TERMINAL_STATUSES == {
            "completed", "refunded", "cancelled_by_buyer", "failed_no_supplier",
        }

    def test_cannot_cancel_after_payment(self) -> None:
        assert "waiting_payment" in CANCELLABLE_STATUSES
        assert "paid_held" not in CANCELLABLE_STATUSES

    def test_exhausted_status_reachable_from_pre_match(self) -> None:
        for kind in BroadcastKind:
            assert EXHAUSTED_STATUS[kind] in ALLOWED[PRE_MATCH_STATUS[kind]]


class TestOrderModel:
    def test_total_computed_on_creation(self) -> None:
        assert _order().total_amount == 105000

    def test_apply_recomputes_total(self) -> None:
        order = _order().apply({"shipping_cost": 16000})
        assert order.total_amount == 121000

    def test_apply_refuses_status(self) -> None:
        with pytest.raises(ValueError):
            _order().apply({"status": "completed"})

    def test_apply_refuses_unknown_field(self) -> None:
        with pytest.raises(ValueError):
            _order().apply({"colour": "red"})

    def test_involves(self) -> None:
        order = _order(supplier_id="s", courier_id="c")
        assert order.involves("b") and order.involves("s") and order.involves("c")
        assert not order.involves("x")

    def test_terminal_and_self_delivery(self) -> None:
        assert _order(status="completed").is_terminal
        assert not _order().is_terminal
        assert _order(delivery_method="self").is_self_delivery
