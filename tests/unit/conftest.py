"""In-memory repositories for service-level unit tests.

Each fake follows the contract of the matching Protocol closely enough that
the real OrderStateMachine / BroadcastCoordinator / WalletLedger can run on
top of it: reads return copies, conditional writes check their guard, and
BroadcastRepository.get yields to the event loop so concurrent coroutines
interleave the way two webhook requests would.
"""

import asyncio
import dataclasses
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock

import pytest

from src.js_broadcast.application.coordinator import BroadcastCoordinator
from src.js_broadcast.domain.models import BroadcastRecord
from src.js_notify.domain.models import OutboundMessage
from src.js_order.application.service import OrderWorkflowService
from src.js_order.application.state_machine import OrderStateMachine
from src.js_order.domain.models import Order
from src.js_party.application.capacity import CapacityGuard
from src.js_party.application.geo_index import GeoIndex
from src.js_party.domain.geo import GeoPoint
from src.js_party.domain.models import NearbyCandidate, Party
from src.js_wallet.application.ledger import WalletLedger
from src.js_wallet.domain.models import PLATFORM_PARTY_ID, LedgerEntry, Wallet


class FakeOrderRepository:
    def __init__(self) -> None:
        self.orders: dict[str, Order] = {}
        self.history: list[tuple[str, str, str, str | None]] = []

    async def insert(self, db: Any, order: Order) -> None:
        self.orders[order.id] = dataclasses.replace(order)

    async def get_by_id(self, db: Any, order_id: str) -> Order | None:
        order = self.orders.get(order_id)
        return dataclasses.replace(order) if order else None

    async def get_for_update(self, db: Any, order_id: str) -> Order | None:
        return await self.get_by_id(db, order_id)

    async def compare_and_set(
        self, db: Any, order_id: str, expected: str, target: str, changes: dict[str, Any]
    ) -> Order | None:
        order = self.orders.get(order_id)
        if order is None or order.status != expected:
            return None
        for key, value in changes.items():
            setattr(order, key, value)
        order.status = target
        return dataclasses.replace(order)

    async def update_fields(
        self, db: Any, order_id: str, changes: dict[str, Any], required_statuses: list[str]
    ) -> Order | None:
        order = self.orders.get(order_id)
        if order is None or order.status not in required_statuses:
            return None
        for key, value in changes.items():
            setattr(order, key, value)
        return dataclasses.replace(order)

    async def record_transition(
        self, db: Any, order_id: str, from_status: str, to_status: str, reason: str | None
    ) -> None:
        self.history.append((order_id, from_status, to_status, reason))

    async def find_by_ref(self, db: Any, ref: str, party_id: str) -> list[Order]:
        return [
            dataclasses.replace(o)
            for o in self.orders.values()
            if o.id.startswith(ref) and o.involves(party_id)
        ]

    async def list_by_party(
        self,
        db: Any,
        party_id: str,
        statuses: list[str] | None,
        limit: int,
        cursor: str | None,
    ) -> list[Order]:
        found = [
            dataclasses.replace(o)
            for o in self.orders.values()
            if o.involves(party_id) and (statuses is None or o.status in statuses)
        ]
        return found[:limit]

    def transitions_to(self, order_id: str, status: str) -> int:
        return sum(1 for h in self.history if h[0] == order_id and h[2] == status)


class FakePartyRepository:
    def __init__(self) -> None:
        self.parties: dict[str, Party] = {}
        self.active_orders: dict[str, int] = {}
        self.distances: dict[str, float] = {}

    def add(self, party: Party, distance_km: float = 1.0) -> Party:
        self.parties[party.id] = party
        self.distances[party.id] = distance_km
        return party

    async def create(self, db: Any, party: Party) -> Party:
        return self.add(party)

    async def get_by_id(self, db: Any, party_id: str) -> Party | None:
        return self.parties.get(party_id)

    async def get_by_phone(self, db: Any, phone: str) -> Party | None:
        return next((p for p in self.parties.values() if p.phone == phone), None)

    async def update_location(
        self, db: Any, party_id: str, point: GeoPoint, address: str | None
    ) -> Party | None:
        party = self.parties.get(party_id)
        if party is None:
            return None
        party.latitude, party.longitude = point.latitude, point.longitude
        if address is not None:
            party.address = address
        return party

    async def find_nearby(
        self,
        db: Any,
        point: GeoPoint,
        role: str,
        radius_km: float,
        limit: int,
        category: str | None,
        exclude_ids: list[str],
        max_active_orders: int,
    ) -> list[NearbyCandidate]:
        hits = []
        for party in self.parties.values():
            if party.role != role or not party.is_active or party.id in exclude_ids:
                continue
            if role == "courier" and party.is_busy:
                continue
            if role == "supplier" and self.active_orders.get(party.id, 0) >= max_active_orders:
                continue
            if category and category not in party.categories:
                continue
            distance = self.distances.get(party.id, 1.0)
            if distance > radius_km:
                continue
            hits.append(NearbyCandidate(party.id, party.phone, party.name, distance))
        hits.sort(key=lambda c: (c.distance_km, c.party_id))
        return hits[:limit]

    async def lock_and_count_active_orders(self, db: Any, supplier_id: str) -> int | None:
        if supplier_id not in self.parties:
            return None
        return self.active_orders.get(supplier_id, 0)

    async def mark_busy(self, db: Any, courier_id: str) -> bool:
        party = self.parties.get(courier_id)
        if party is None or party.is_busy:
            return False
        party.is_busy = True
        return True

    async def clear_busy(self, db: Any, courier_id: str) -> None:
        party = self.parties.get(courier_id)
        if party is not None:
            party.is_busy = False


class FakeBroadcastRepository:
    def __init__(self) -> None:
        self.records: list[BroadcastRecord] = []

    async def insert_records(
        self,
        db: Any,
        order_id: str,
        kind: str,
        round_no: int,
        candidates: list[NearbyCandidate],
        reopen_lapsed: bool = False,
    ) -> list[BroadcastRecord]:
        inserted = []
        for c in candidates:
            existing = next(
                (
                    r for r in self.records
                    if r.order_id == order_id and r.kind == kind and r.candidate_id == c.party_id
                ),
                None,
            )
            if existing is not None:
                if reopen_lapsed and existing.response in ("expired", "stale"):
                    existing.round = round_no
                    existing.distance_km = c.distance_km
                    existing.sent_at = datetime.now(timezone.utc)
                    existing.response = None
                    existing.responded_at = None
                    inserted.append(dataclasses.replace(existing))
                continue
            record = BroadcastRecord(
                id=len(self.records) + 1,
                order_id=order_id,
                kind=kind,
                candidate_id=c.party_id,
                round=round_no,
                distance_km=c.distance_km,
                sent_at=datetime.now(timezone.utc),
            )
            self.records.append(record)
            inserted.append(dataclasses.replace(record))
        return inserted

    async def get(
        self, db: Any, order_id: str, kind: str, candidate_id: str
    ) -> BroadcastRecord | None:
        await asyncio.sleep(0)
        for r in self.records:
            if r.order_id == order_id and r.kind == kind and r.candidate_id == candidate_id:
                return dataclasses.replace(r)
        return None

    async def mark_response(self, db: Any, record_id: int, response: str) -> bool:
        record = self.records[record_id - 1]
        if record.response is not None:
            return False
        record.response = response
        record.responded_at = datetime.now(timezone.utc)
        return True

    async def close_open(self, db: Any, order_id: str, kind: str | None, response: str) -> int:
        closed = 0
        for r in self.records:
            if r.order_id == order_id and r.response is None and kind in (None, r.kind):
                r.response = response
                closed += 1
        return closed

    async def withdraw_accepted(self, db: Any, order_id: str, kind: str) -> int:
        count = 0
        for r in self.records:
            if r.order_id == order_id and r.kind == kind and r.response == "accepted":
                r.response = "withdrawn"
                count += 1
        return count

    async def current_round(self, db: Any, order_id: str, kind: str) -> int:
        rounds = [r.round for r in self.records if r.order_id == order_id and r.kind == kind]
        return max(rounds, default=0)

    async def round_counts(
        self, db: Any, order_id: str, kind: str, round_no: int
    ) -> tuple[int, int]:
        same = [
            r for r in self.records
            if r.order_id == order_id and r.kind == kind and r.round == round_no
        ]
        return (
            sum(1 for r in same if r.response is None),
            sum(1 for r in same if r.response == "accepted"),
        )

    async def contacted_ids(self, db: Any, order_id: str, kind: str) -> list[str]:
        return [r.candidate_id for r in self.records if r.order_id == order_id and r.kind == kind]

    async def declined_ids(self, db: Any, order_id: str, kind: str) -> list[str]:
        return [
            r.candidate_id for r in self.records
            if r.order_id == order_id and r.kind == kind and r.response == "rejected"
        ]

    async def expire_sent_before(self, db: Any, cutoff: datetime) -> list[tuple[str, str]]:
        affected: list[tuple[str, str]] = []
        for r in self.records:
            if r.response is None and r.sent_at is not None and r.sent_at < cutoff:
                r.response = "expired"
                if (r.order_id, r.kind) not in affected:
                    affected.append((r.order_id, r.kind))
        return affected

    async def open_for_candidate(
        self, db: Any, candidate_id: str, kind: str | None, ref: str | None
    ) -> list[BroadcastRecord]:
        return [
            dataclasses.replace(r)
            for r in self.records
            if r.candidate_id == candidate_id
            and r.response is None
            and kind in (None, r.kind)
            and (ref is None or r.order_id.startswith(ref))
        ]

    async def closed_for_candidate(
        self, db: Any, candidate_id: str, kind: str | None, ref: str | None, response: str
    ) -> list[BroadcastRecord]:
        return [
            dataclasses.replace(r)
            for r in reversed(self.records)
            if r.candidate_id == candidate_id
            and r.response == response
            and kind in (None, r.kind)
            and (ref is None or r.order_id.startswith(ref))
        ]

    async def list_for_order(self, db: Any, order_id: str) -> list[BroadcastRecord]:
        return [dataclasses.replace(r) for r in self.records if r.order_id == order_id]

    def backdate(self, minutes: int) -> None:
        for r in self.records:
            if r.sent_at is not None:
                r.sent_at -= timedelta(minutes=minutes)


class FakeWalletRepository:
    def __init__(self) -> None:
        self.wallets: dict[str, Wallet] = {}
        self.entries: list[LedgerEntry] = []

    async def create_wallet(self, db: Any, party_id: str) -> None:
        self.wallets.setdefault(party_id, Wallet(party_id, 0, 0, 0, 0))

    async def get_wallet(self, db: Any, party_id: str) -> Wallet | None:
        wallet = self.wallets.get(party_id)
        return dataclasses.replace(wallet) if wallet else None

    async def credit_escrow(self, db: Any, party_id: str, amount: int) -> Wallet | None:
        wallet = self.wallets.get(party_id)
        if wallet is None:
            return None
        wallet.escrow_held += amount
        wallet.version += 1
        return dataclasses.replace(wallet)

    async def debit_escrow(self, db: Any, party_id: str, amount: int) -> Wallet | None:
        wallet = self.wallets.get(party_id)
        if wallet is None or wallet.escrow_held < amount:
            return None
        wallet.escrow_held -= amount
        wallet.version += 1
        return dataclasses.replace(wallet)

    async def credit_available(
        self, db: Any, party_id: str, amount: int, earned: bool
    ) -> Wallet | None:
        wallet = self.wallets.get(party_id)
        if wallet is None:
            return None
        wallet.available += amount
        if earned:
            wallet.total_earned += amount
        wallet.version += 1
        return dataclasses.replace(wallet)

    async def insert_entry(
        self,
        db: Any,
        party_id: str,
        order_id: str | None,
        entry_type: str,
        amount: int,
        balance_after: int,
        description: str,
    ) -> LedgerEntry:
        entry = LedgerEntry(
            len(self.entries) + 1, party_id, order_id, entry_type, amount, balance_after,
            description,
        )
        self.entries.append(entry)
        return entry

    async def order_escrow_balance(self, db: Any, order_id: str, holder_id: str) -> int:
        return sum(
            e.amount for e in self.entries
            if e.order_id == order_id
            and e.party_id == holder_id
            and e.entry_type in ("escrow_in", "escrow_release", "refund_out")
        )

    async def list_entries(
        self,
        db: Any,
        party_id: str,
        cursor_id: int | None,
        limit: int,
        entry_type: str | None,
    ) -> list[LedgerEntry]:
        found = [
            e for e in reversed(self.entries)
            if e.party_id == party_id
            and (cursor_id is None or e.id < cursor_id)
            and (entry_type is None or e.entry_type == entry_type)
        ]
        return found[:limit]

    def order_net(self, order_id: str) -> int:
        return sum(e.amount for e in self.entries if e.order_id == order_id)


class RecordingDispatcher:
    """Stands in for NotificationDispatcher; keeps every dispatched message."""

    def __init__(self) -> None:
        self.sent: list[OutboundMessage] = []

    async def dispatch(self, messages: list[OutboundMessage]) -> int:
        self.sent.extend(messages)
        return len(messages)

    def to(self, phone: str) -> list[OutboundMessage]:
        return [m for m in self.sent if m.phone == phone]


def make_party(
    party_id: str,
    role: str,
    phone: str,
    latitude: float | None = -6.2,
    longitude: float | None = 106.8,
    **kwargs: Any,
) -> Party:
    return Party(
        id=party_id,
        phone=phone,
        name=party_id.title(),
        role=role,
        latitude=latitude,
        longitude=longitude,
        address=f"{party_id} street 1",
        **kwargs,
    )


def make_order(order_id: str = "0a1b2c3d-0000-0000-0000-000000000001", **kwargs: Any) -> Order:
    fields: dict[str, Any] = {
        "id": order_id,
        "buyer_id": "buyer",
        "product_name": "Beras premium",
        "quantity": 10,
        "unit": "kg",
        "weight_kg": 10.0,
        "buyer_price": 100000,
        "service_fee": 5000,
        "delivery_latitude": -6.2,
        "delivery_longitude": 106.85,
        "delivery_address": "Jl. Sudirman 1",
    }
    fields.update(kwargs)
    return Order(**fields)


class Marketplace:
    """Wires the real services over the in-memory repositories."""

    def __init__(self) -> None:
        self.orders = FakeOrderRepository()
        self.parties = FakePartyRepository()
        self.broadcasts = FakeBroadcastRepository()
        self.wallets = FakeWalletRepository()
        self.dispatcher = RecordingDispatcher()
        self.verifier = AsyncMock()
        self.db = AsyncMock()

        self.capacity = CapacityGuard(self.parties)
        self.ledger = WalletLedger(self.wallets)
        self.state_machine = OrderStateMachine(self.orders, self.ledger, self.capacity)
        self.coordinator = BroadcastCoordinator(
            self.broadcasts, self.state_machine, self.capacity
        )
        self.workflow = OrderWorkflowService(
            repo=self.orders,
            parties=self.parties,
            geo=GeoIndex(self.parties),
            state_machine=self.state_machine,
            coordinator=self.coordinator,
            capacity=self.capacity,
            dispatcher=self.dispatcher,  # type: ignore[arg-type]
            verifier=self.verifier,
        )

    def add_party(self, party: Party, distance_km: float = 1.0) -> Party:
        self.parties.add(party, distance_km)
        self.wallets.wallets[party.id] = Wallet(party.id, 0, 0, 0, 0)
        return party

    def add_supplier(self, party_id: str, phone: str, distance_km: float = 1.0, **kwargs: Any) -> Party:
        return self.add_party(make_party(party_id, "supplier", phone, **kwargs), distance_km)

    def add_courier(self, party_id: str, phone: str, distance_km: float = 1.0, **kwargs: Any) -> Party:
        return self.add_party(make_party(party_id, "courier", phone, **kwargs), distance_km)

    def seed_order(self, **kwargs: Any) -> Order:
        order = make_order(**kwargs)
        self.orders.orders[order.id] = order
        return order

    def order(self, order_id: str) -> Order:
        return self.orders.orders[order_id]


@pytest.fixture
def market() -> Marketplace:
    m = Marketplace()
    m.wallets.wallets[PLATFORM_PARTY_ID] = Wallet(PLATFORM_PARTY_ID, 0, 0, 0, 0)
    m.add_party(make_party("buyer", "buyer", "6281100000001"))
    return m
