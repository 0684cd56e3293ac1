"""Order status transition table.

The single source of truth for which status changes are legal. Everything
that writes orders.status goes through OrderStateMachine.transition(), which
checks this table before issuing its conditional UPDATE.
"""

from src.js_common.enums import BroadcastKind, OrderStatus

S = OrderStatus

ALLOWED: dict[OrderStatus, frozenset[OrderStatus]] = {
    S.SEARCHING_SUPPLIER: frozenset({
        S.WAITING_BUYER_APPROVAL,   # supplier accepted at a negotiated price
        S.WAITING_PAYMENT,          # supplier accepted, delivers itself
        S.NEGOTIATING_COURIER,      # supplier accepted, needs a courier
        S.FAILED_NO_SUPPLIER,
        S.CANCELLED_BY_BUYER,
    }),
    S.WAITING_BUYER_APPROVAL: frozenset({
        S.WAITING_PAYMENT,
        S.SEARCHING_SUPPLIER,       # buyer rejected the offer
        S.CANCELLED_BY_BUYER,
    }),
    S.NEGOTIATING_COURIER: frozenset({
        S.WAITING_PAYMENT,
        S.STUCK_NO_COURIER,
        S.CANCELLED_BY_BUYER,
    }),
    S.STUCK_NO_COURIER: frozenset({
        S.WAITING_PAYMENT,          # supplier switches to self-delivery
        S.NEGOTIATING_COURIER,      # courier search retried
        S.CANCELLED_BY_BUYER,
    }),
    S.WAITING_PAYMENT: frozenset({S.PAID_HELD, S.CANCELLED_BY_BUYER}),
    S.PAID_HELD: frozenset({S.SHIPPING}),
    S.SHIPPING: frozenset({S.DELIVERED, S.COMPLETED, S.DISPUTE_CHECK}),
    S.DELIVERED: frozenset({S.COMPLETED, S.DISPUTE_CHECK}),
    S.DISPUTE_CHECK: frozenset({S.COMPLETED, S.REFUNDED}),
    S.COMPLETED: frozenset(),
    S.REFUNDED: frozenset(),
    S.CANCELLED_BY_BUYER: frozenset(),
    S.FAILED_NO_SUPPLIER: frozenset(),
}

TERMINAL_STATUSES: frozenset[str] = frozenset(
    s.value for s, targets in ALLOWED.items() if not targets
)

CANCELLABLE_STATUSES: frozenset[str] = frozenset(
    s.value for s, targets in ALLOWED.items() if S.CANCELLED_BY_BUYER in targets
)

# Status an order must be in for a broadcast of that kind to be answerable,
# and the status it falls into when every candidate has declined.
PRE_MATCH_STATUS: dict[BroadcastKind, OrderStatus] = {
    BroadcastKind.SUPPLIER: S.SEARCHING_SUPPLIER,
    BroadcastKind.COURIER: S.NEGOTIATING_COURIER,
}
EXHAUSTED_STATUS: dict[BroadcastKind, OrderStatus] = {
    BroadcastKind.SUPPLIER: S.FAILED_NO_SUPPLIER,
    BroadcastKind.COURIER: S.STUCK_NO_COURIER,
}


def can_transition(current: str, target: str) -> bool:
    try:
        return OrderStatus(target) in ALLOWED[OrderStatus(current)]
    except ValueError:
        return False
