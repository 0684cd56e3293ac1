"""OrderWorkflowService — order lifecycle orchestration.

Each public method is one use case and owns its transaction: state changes go
through OrderStateMachine / BroadcastCoordinator inside a single
commit-or-rollback block, and the WhatsApp messages collected along the way
are handed to the NotificationDispatcher only after the commit succeeded.

Used by the REST routers and by the webhook command handlers, so a supplier
answering "SANGGUP KIRIM" on WhatsApp and an operator clicking the dashboard
button run the same code.
"""

import hmac
import logging
import secrets
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.js_broadcast.application.coordinator import BroadcastCoordinator, OfferComposer
from src.js_broadcast.domain.models import AcceptTerms, OutcomeKind, ResolutionOutcome
from src.js_common.datetime_utils import utc_now
from src.js_common.enums import BroadcastKind, DeliveryMethod, OrderStatus, PartyRole
from src.js_common.errors import (
    InvalidDeliveryTokenError,
    InvalidLocationError,
    InvalidTransitionError,
    OrderAccessDeniedError,
    OrderNotFoundError,
    PartyNotFoundError,
    PartyRoleMismatchError,
    VisionUnavailableError,
)
from src.js_common.money import calculate_service_fee, calculate_shipping_cost
from src.js_notify.application import templates
from src.js_notify.application.dispatcher import NotificationDispatcher, get_dispatcher
from src.js_notify.domain.models import OutboundMessage
from src.js_order.application.schemas import (
    CreateOrderOutcome,
    CreateOrderRequest,
    CreateOrderResponse,
    OrderListResponse,
    OrderResponse,
    TrackLocationRequest,
)
from src.js_order.application.state_machine import OrderStateMachine
from src.js_order.domain.models import Order
from src.js_order.domain.repository import OrderRepositoryProtocol
from src.js_order.domain.transitions import PRE_MATCH_STATUS, can_transition
from src.js_order.infrastructure.persistence import OrderRepository
from src.js_party.application.capacity import CapacityGuard
from src.js_party.application.geo_index import GeoIndex, default_radius_km
from src.js_party.domain.geo import GeoPoint, haversine_km, round_km
from src.js_party.domain.models import NearbyCandidate, Party, SearchFilter
from src.js_party.domain.repository import PartyRepositoryProtocol
from src.js_party.infrastructure.persistence import PartyRepository
from src.js_verify.domain.verifier import DISPUTE_INSTRUCTIONS, VisionVerifier
from src.js_verify.infrastructure.gemini import build_default_verifier

logger = logging.getLogger(__name__)

S = OrderStatus


class OrderWorkflowService:
    def __init__(
        self,
        repo: OrderRepositoryProtocol | None = None,
        parties: PartyRepositoryProtocol | None = None,
        geo: GeoIndex | None = None,
        state_machine: OrderStateMachine | None = None,
        coordinator: BroadcastCoordinator | None = None,
        capacity: CapacityGuard | None = None,
        dispatcher: NotificationDispatcher | None = None,
        verifier: VisionVerifier | None = None,
    ) -> None:
        self._repo: OrderRepositoryProtocol = repo or OrderRepository()
        self._parties: PartyRepositoryProtocol = parties or PartyRepository()
        self._geo = geo or GeoIndex(self._parties)
        self._capacity = capacity or CapacityGuard(self._parties)
        self._sm = state_machine or OrderStateMachine(self._repo, capacity=self._capacity)
        self._coordinator = coordinator or BroadcastCoordinator(
            state_machine=self._sm, capacity=self._capacity
        )
        self._dispatcher = dispatcher
        self._verifier = verifier

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _notify(self, messages: list[OutboundMessage]) -> None:
        if messages:
            await (self._dispatcher or get_dispatcher()).dispatch(messages)

    def _get_verifier(self) -> VisionVerifier | None:
        if self._verifier is None:
            self._verifier = build_default_verifier()
        return self._verifier

    async def _order(self, db: AsyncSession, order_id: str) -> Order:
        order = await self._repo.get_by_id(db, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def _party(self, db: AsyncSession, party_id: str, role: PartyRole) -> Party:
        party = await self._parties.get_by_id(db, party_id)
        if party is None or not party.is_active:
            raise PartyNotFoundError(party_id)
        if party.role != role.value:
            raise PartyRoleMismatchError(party_id, role.value)
        return party

    async def _maybe_party(self, db: AsyncSession, party_id: str | None) -> Party | None:
        if not party_id:
            return None
        return await self._parties.get_by_id(db, party_id)

    @staticmethod
    def _message(party: Party | None, text: str, order: Order, purpose: str) -> list[OutboundMessage]:
        if party is None:
            return []
        return [OutboundMessage(phone=party.phone, text=text, order_id=order.id, purpose=purpose)]

    @staticmethod
    def _check_buyer(order: Order, buyer_id: str) -> None:
        if order.buyer_id != buyer_id:
            raise OrderAccessDeniedError(order.id)

    @staticmethod
    def _check_carrier(order: Order, party_id: str) -> None:
        """The party moving the goods: the courier, or the supplier on self-delivery."""
        carrier = order.supplier_id if order.is_self_delivery else order.courier_id
        if not carrier or carrier != party_id:
            raise OrderAccessDeniedError(order.id)

    @staticmethod
    def _check_token(order: Order, token: str) -> None:
        if not order.delivery_token or not hmac.compare_digest(order.delivery_token, token):
            raise InvalidDeliveryTokenError()

    # ------------------------------------------------------------------
    # Searches and offers
    # ------------------------------------------------------------------

    def _supplier_composer(self, order: Order) -> OfferComposer:
        def compose(candidate: NearbyCandidate) -> str:
            return templates.supplier_offer(
                order.id,
                order.product_name,
                order.quantity,
                order.unit,
                order.weight_kg,
                order.delivery_address,
                candidate.distance_km,
                order.buyer_price,
            )

        return compose

    def _courier_composer(self, order: Order, supplier: Party | None) -> OfferComposer:
        supplier_name = supplier.display_name if supplier else "supplier"

        def compose(candidate: NearbyCandidate) -> str:
            return templates.courier_offer(
                order.id,
                supplier_name,
                order.pickup_address or "",
                order.delivery_address,
                order.distance_km or 0.0,
                order.shipping_cost,
                order.product_name,
                order.weight_kg,
            )

        return compose

    async def _candidates(
        self, db: AsyncSession, order: Order, kind: BroadcastKind, exclude_ids: list[str]
    ) -> list[NearbyCandidate]:
        if kind == BroadcastKind.SUPPLIER:
            point = GeoPoint(order.delivery_latitude, order.delivery_longitude)
            flt = SearchFilter(category=order.category, exclude_ids=exclude_ids)
            return await self._geo.find_nearby(db, point, PartyRole.SUPPLIER, flt)
        if order.pickup_latitude is None or order.pickup_longitude is None:
            raise InvalidLocationError(f"order {order.id} has no pickup point")
        point = GeoPoint(order.pickup_latitude, order.pickup_longitude)
        return await self._geo.find_nearby(
            db, point, PartyRole.COURIER, SearchFilter(exclude_ids=exclude_ids)
        )

    async def _exhausted_messages(
        self, db: AsyncSession, order: Order, kind: BroadcastKind
    ) -> list[OutboundMessage]:
        if kind == BroadcastKind.SUPPLIER:
            buyer = await self._maybe_party(db, order.buyer_id)
            text = templates.buyer_no_supplier(
                order.product_name, default_radius_km(PartyRole.SUPPLIER)
            )
            return self._message(buyer, text, order, "buyer_no_supplier")
        supplier = await self._maybe_party(db, order.supplier_id)
        return self._message(
            supplier, templates.supplier_no_courier(order.id), order, "supplier_no_courier"
        )

    async def _fan_out(
        self,
        db: AsyncSession,
        order: Order,
        kind: BroadcastKind,
        max_rounds: int | None = None,
        manual_retry: bool = False,
    ) -> list[OutboundMessage]:
        """Broadcast the next round to uncontacted candidates, or exhaust the order.

        A manual retry skips only candidates who declined; anyone whose offer
        lapsed is asked again. The order must be in the pre-match status of
        `kind`.
        """
        round_no = await self._coordinator.current_round(db, order.id, kind)
        candidates: list[NearbyCandidate] = []
        if max_rounds is None or round_no < max_rounds:
            if manual_retry:
                excluded = await self._coordinator.declined_ids(db, order.id, kind)
            else:
                excluded = await self._coordinator.contacted_ids(db, order.id, kind)
            candidates = await self._candidates(db, order, kind, excluded)

        if candidates:
            if kind == BroadcastKind.SUPPLIER:
                compose = self._supplier_composer(order)
            else:
                compose = self._courier_composer(
                    order, await self._maybe_party(db, order.supplier_id)
                )
            batch = await self._coordinator.broadcast(
                db, order, kind, candidates, compose, round_no + 1, reopen_lapsed=manual_retry
            )
            if not batch.is_empty:
                return batch.messages

        reason = f"no {kind.value} available"
        exhausted = await self._coordinator.exhaust(db, order.id, kind, reason)
        return await self._exhausted_messages(db, exhausted, kind)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_order(self, db: AsyncSession, req: CreateOrderRequest) -> CreateOrderResponse:
        """Create an order and broadcast it to nearby suppliers.

        When nobody is in range the order is kept as failed_no_supplier, the
        buyer is told once, and the order comes back with the no_candidates
        outcome and a try-later notice.
        """
        GeoPoint(req.delivery_latitude, req.delivery_longitude)
        order = Order(
            id=str(uuid.uuid4()),
            buyer_id=req.buyer_id,
            product_name=req.product_name,
            category=req.category.strip().lower() if req.category else None,
            quantity=req.quantity,
            unit=req.unit,
            weight_kg=req.weight_kg,
            buyer_price=req.buyer_price,
            service_fee=calculate_service_fee(req.buyer_price, settings.SERVICE_FEE_BPS),
            delivery_latitude=req.delivery_latitude,
            delivery_longitude=req.delivery_longitude,
            delivery_address=req.delivery_address,
        )
        try:
            await self._party(db, req.buyer_id, PartyRole.BUYER)
            await self._repo.insert(db, order)
            messages = await self._fan_out(db, order, BroadcastKind.SUPPLIER)
            order = await self._order(db, order.id)
            contacted = await self._coordinator.contacted_ids(
                db, order.id, BroadcastKind.SUPPLIER
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await self._notify(messages)
        logger.info(
            "Order %s created for buyer %s: %s, %d supplier(s) contacted",
            order.id,
            order.buyer_id,
            order.status,
            len(contacted),
        )
        if order.status == S.FAILED_NO_SUPPLIER.value:
            return CreateOrderResponse(
                order=OrderResponse.from_domain(order),
                suppliers_contacted=0,
                outcome=CreateOrderOutcome.NO_CANDIDATES,
                notice=(
                    "No available supplier within "
                    f"{default_radius_km(PartyRole.SUPPLIER):g} km, "
                    "try again later or widen the search"
                ),
            )
        return CreateOrderResponse(
            order=OrderResponse.from_domain(order), suppliers_contacted=len(contacted)
        )

    # ------------------------------------------------------------------
    # Supplier / courier answers
    # ------------------------------------------------------------------

    def _supplier_terms(
        self,
        order: Order,
        supplier: Party,
        method: DeliveryMethod,
        offered_price: int | None,
    ) -> AcceptTerms:
        if not supplier.has_location:
            raise InvalidLocationError(f"supplier {supplier.id} has no location")
        pickup = GeoPoint(supplier.latitude, supplier.longitude)  # type: ignore[arg-type]
        distance = haversine_km(
            pickup, GeoPoint(order.delivery_latitude, order.delivery_longitude)
        )
        changes = {
            "supplier_id": supplier.id,
            "pickup_latitude": supplier.latitude,
            "pickup_longitude": supplier.longitude,
            "pickup_address": supplier.address,
            "distance_km": round_km(distance),
        }
        if offered_price is not None:
            changes.update(
                supplier_offered_price=offered_price,
                delivery_method=DeliveryMethod.SELF.value,
                shipping_cost=0,
            )
            return AcceptTerms(S.WAITING_BUYER_APPROVAL, changes, "supplier offered a price")
        if method == DeliveryMethod.SELF:
            changes.update(
                supplier_price=order.buyer_price,
                delivery_method=DeliveryMethod.SELF.value,
                shipping_cost=0,
            )
            return AcceptTerms(S.WAITING_PAYMENT, changes, "supplier delivers itself")
        changes.update(
            supplier_price=order.buyer_price,
            delivery_method=DeliveryMethod.COURIER.value,
            shipping_cost=calculate_shipping_cost(
                distance, settings.SHIPPING_RATE_PER_KM, settings.SHIPPING_MIN_COST
            ),
        )
        return AcceptTerms(S.NEGOTIATING_COURIER, changes, "supplier needs a courier")

    async def respond_as_supplier(
        self,
        db: AsyncSession,
        order_id: str,
        supplier_id: str,
        accept: bool,
        delivery_method: DeliveryMethod = DeliveryMethod.SELF,
        offered_price: int | None = None,
    ) -> ResolutionOutcome:
        messages: list[OutboundMessage] = []
        try:
            supplier = await self._party(db, supplier_id, PartyRole.SUPPLIER)
            terms = None
            if accept:
                order = await self._order(db, order_id)
                terms = self._supplier_terms(order, supplier, delivery_method, offered_price)
            outcome = await self._coordinator.record_response(
                db, order_id, BroadcastKind.SUPPLIER, supplier_id, accept, terms
            )
            updated = outcome.order
            if outcome.kind == OutcomeKind.MATCHED and updated is not None:
                buyer = await self._maybe_party(db, updated.buyer_id)
                if updated.status == S.WAITING_BUYER_APPROVAL.value:
                    messages += self._message(
                        buyer,
                        templates.buyer_supplier_offer(
                            updated.id, supplier.display_name, updated.supplier_offered_price or 0
                        ),
                        updated,
                        "buyer_supplier_offer",
                    )
                elif updated.status == S.WAITING_PAYMENT.value:
                    messages += self._message(
                        buyer,
                        templates.buyer_payment_request(
                            updated.id, supplier.display_name, updated.total_amount
                        ),
                        updated,
                        "buyer_payment_request",
                    )
                else:
                    messages += await self._fan_out(db, updated, BroadcastKind.COURIER)
            elif outcome.kind == OutcomeKind.EXHAUSTED and updated is not None:
                messages += await self._exhausted_messages(db, updated, BroadcastKind.SUPPLIER)
            elif outcome.kind == OutcomeKind.REJECTION_RECORDED and updated is not None:
                messages += self._message(
                    supplier, templates.response_recorded(order_id), updated, "response_recorded"
                )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await self._notify(messages)
        return outcome

    async def respond_as_courier(
        self, db: AsyncSession, order_id: str, courier_id: str, accept: bool
    ) -> ResolutionOutcome:
        messages: list[OutboundMessage] = []
        try:
            courier = await self._party(db, courier_id, PartyRole.COURIER)
            terms = None
            if accept:
                terms = AcceptTerms(
                    S.WAITING_PAYMENT, {"courier_id": courier_id}, f"courier {courier_id} accepted"
                )
            outcome = await self._coordinator.record_response(
                db, order_id, BroadcastKind.COURIER, courier_id, accept, terms
            )
            updated = outcome.order
            if outcome.kind == OutcomeKind.MATCHED and updated is not None:
                supplier = await self._maybe_party(db, updated.supplier_id)
                buyer = await self._maybe_party(db, updated.buyer_id)
                if supplier is not None:
                    messages += self._message(
                        courier,
                        templates.courier_assigned(
                            updated.id,
                            supplier.display_name,
                            supplier.phone,
                            updated.pickup_address or "",
                        ),
                        updated,
                        "courier_assigned",
                    )
                    messages += self._message(
                        supplier,
                        templates.supplier_courier_assigned(updated.id, courier.name, courier.phone),
                        updated,
                        "supplier_courier_assigned",
                    )
                messages += self._message(
                    buyer,
                    templates.buyer_payment_request(
                        updated.id,
                        supplier.display_name if supplier else "The supplier",
                        updated.total_amount,
                    ),
                    updated,
                    "buyer_payment_request",
                )
            elif outcome.kind == OutcomeKind.EXHAUSTED and updated is not None:
                messages += await self._exhausted_messages(db, updated, BroadcastKind.COURIER)
            elif outcome.kind == OutcomeKind.REJECTION_RECORDED and updated is not None:
                messages += self._message(
                    courier, templates.response_recorded(order_id), updated, "response_recorded"
                )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await self._notify(messages)
        return outcome

    # ------------------------------------------------------------------
    # Buyer decisions
    # ------------------------------------------------------------------

    async def approve_offer(self, db: AsyncSession, order_id: str, buyer_id: str) -> OrderResponse:
        """Buyer accepts the supplier's price; it replaces buyer_price."""
        try:
            order = await self._sm.lock(db, order_id)
            self._check_buyer(order, buyer_id)
            if order.status != S.WAITING_BUYER_APPROVAL.value or order.supplier_id is None:
                raise InvalidTransitionError(order_id, order.status, S.WAITING_PAYMENT.value)
            price = order.supplier_offered_price or order.buyer_price
            await self._capacity.reserve_supplier(db, order.supplier_id)
            order = await self._sm.transition(
                db,
                order_id,
                S.WAITING_PAYMENT,
                expected=S.WAITING_BUYER_APPROVAL,
                changes={
                    "buyer_price": price,
                    "supplier_price": price,
                    "service_fee": calculate_service_fee(price, settings.SERVICE_FEE_BPS),
                },
                reason="buyer approved supplier price",
            )
            supplier = await self._maybe_party(db, order.supplier_id)
            buyer = await self._maybe_party(db, order.buyer_id)
            messages = self._message(
                buyer,
                templates.buyer_payment_request(
                    order.id, supplier.display_name if supplier else "The supplier",
                    order.total_amount,
                ),
                order,
                "buyer_payment_request",
            ) + self._message(
                supplier,
                templates.supplier_offer_approved(order.id, price),
                order,
                "supplier_offer_approved",
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await self._notify(messages)
        return OrderResponse.from_domain(order)

    async def reject_offer(self, db: AsyncSession, order_id: str, buyer_id: str) -> OrderResponse:
        """Buyer turns the supplier's price down; the search continues with others."""
        try:
            order = await self._sm.lock(db, order_id)
            self._check_buyer(order, buyer_id)
            supplier = await self._maybe_party(db, order.supplier_id)
            order = await self._sm.transition(
                db,
                order_id,
                S.SEARCHING_SUPPLIER,
                expected=S.WAITING_BUYER_APPROVAL,
                changes={
                    "supplier_id": None,
                    "supplier_offered_price": None,
                    "supplier_price": None,
                    "delivery_method": None,
                    "distance_km": None,
                    "pickup_latitude": None,
                    "pickup_longitude": None,
                    "pickup_address": None,
                    "shipping_cost": 0,
                },
                reason="buyer rejected supplier price",
            )
            await self._coordinator.withdraw_accepted(db, order_id, BroadcastKind.SUPPLIER)
            messages = self._message(
                supplier, templates.supplier_offer_declined(order.id), order,
                "supplier_offer_declined",
            )
            follow_up = await self._fan_out(
                db, order, BroadcastKind.SUPPLIER, settings.BROADCAST_MAX_ROUNDS
            )
            order = await self._order(db, order_id)
            if order.status == S.SEARCHING_SUPPLIER.value:
                buyer = await self._maybe_party(db, order.buyer_id)
                messages += self._message(
                    buyer, templates.buyer_searching_again(order.id), order,
                    "buyer_searching_again",
                )
            messages += follow_up
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await self._notify(messages)
        return OrderResponse.from_domain(order)

    async def cancel(
        self, db: AsyncSession, order_id: str, buyer_id: str, reason: str | None = None
    ) -> OrderResponse:
        try:
            order = await self._sm.lock(db, order_id)
            self._check_buyer(order, buyer_id)
            order = await self._sm.transition(
                db,
                order_id,
                S.CANCELLED_BY_BUYER,
                expected=S(order.status),
                changes={"cancel_reason": reason},
                reason=reason or "buyer cancelled",
            )
            await self._coordinator.close_all(db, order_id)
            messages: list[OutboundMessage] = []
            for party_id in (order.buyer_id, order.supplier_id, order.courier_id):
                messages += self._message(
                    await self._maybe_party(db, party_id),
                    templates.order_cancelled(order.id),
                    order,
                    "order_cancelled",
                )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await self._notify(messages)
        return OrderResponse.from_domain(order)

    # ------------------------------------------------------------------
    # Stuck without a courier
    # ------------------------------------------------------------------

    async def switch_to_self_delivery(
        self, db: AsyncSession, order_id: str, supplier_id: str
    ) -> OrderResponse:
        try:
            order = await self._sm.lock(db, order_id)
            if order.supplier_id != supplier_id:
                raise OrderAccessDeniedError(order_id)
            order = await self._sm.transition(
                db,
                order_id,
                S.WAITING_PAYMENT,
                expected=S.STUCK_NO_COURIER,
                changes={
                    "delivery_method": DeliveryMethod.SELF.value,
                    "shipping_cost": 0,
                    "courier_id": None,
                },
                reason="supplier switched to self-delivery",
            )
            supplier = await self._maybe_party(db, order.supplier_id)
            buyer = await self._maybe_party(db, order.buyer_id)
            messages = self._message(
                supplier, templates.supplier_self_delivery_confirmed(order.id), order,
                "supplier_self_delivery_confirmed",
            ) + self._message(
                buyer,
                templates.buyer_payment_request(
                    order.id, supplier.display_name if supplier else "The supplier",
                    order.total_amount,
                ),
                order,
                "buyer_payment_request",
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await self._notify(messages)
        return OrderResponse.from_domain(order)

    async def retry_courier_search(
        self, db: AsyncSession, order_id: str, supplier_id: str
    ) -> OrderResponse:
        try:
            order = await self._sm.lock(db, order_id)
            if order.supplier_id != supplier_id:
                raise OrderAccessDeniedError(order_id)
            order = await self._sm.transition(
                db,
                order_id,
                S.NEGOTIATING_COURIER,
                expected=S.STUCK_NO_COURIER,
                reason="courier search retried",
            )
            messages = await self._fan_out(db, order, BroadcastKind.COURIER, manual_retry=True)
            order = await self._order(db, order_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await self._notify(messages)
        return OrderResponse.from_domain(order)

    # ------------------------------------------------------------------
    # Payment and delivery
    # ------------------------------------------------------------------

    async def confirm_payment(self, db: AsyncSession, order_id: str) -> OrderResponse:
        """Payment received: escrow is funded and the carrier may pick up."""
        try:
            order = await self._sm.transition(
                db,
                order_id,
                S.PAID_HELD,
                expected=S.WAITING_PAYMENT,
                changes={"delivery_token": secrets.token_urlsafe(16)},
                reason="payment confirmed",
            )
            supplier = await self._maybe_party(db, order.supplier_id)
            courier = await self._maybe_party(db, order.courier_id)
            messages = self._message(
                supplier,
                templates.supplier_payment_received(
                    order.id, order.total_amount, order.is_self_delivery
                ),
                order,
                "supplier_payment_received",
            ) + self._message(
                courier, templates.courier_pickup_ready(order.id), order, "courier_pickup_ready"
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await self._notify(messages)
        return OrderResponse.from_domain(order)

    async def confirm_pickup(
        self, db: AsyncSession, order_id: str, party_id: str, photo_url: str | None = None
    ) -> OrderResponse:
        try:
            order = await self._order(db, order_id)
            self._check_carrier(order, party_id)
            order = await self._sm.transition(
                db,
                order_id,
                S.SHIPPING,
                expected=S.PAID_HELD,
                changes={"pickup_photo_url": photo_url} if photo_url else None,
                reason=f"picked up by {party_id}",
            )
            buyer = await self._maybe_party(db, order.buyer_id)
            messages = self._message(
                buyer, templates.buyer_shipping(order.id), order, "buyer_shipping"
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await self._notify(messages)
        return OrderResponse.from_domain(order)

    async def mark_delivered(self, db: AsyncSession, order_id: str, party_id: str) -> OrderResponse:
        try:
            order = await self._order(db, order_id)
            self._check_carrier(order, party_id)
            order = await self._sm.transition(
                db, order_id, S.DELIVERED, expected=S.SHIPPING, reason=f"delivered by {party_id}"
            )
            buyer = await self._maybe_party(db, order.buyer_id)
            messages = self._message(
                buyer,
                templates.buyer_delivered(order.id, order.delivery_token or ""),
                order,
                "buyer_delivered",
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await self._notify(messages)
        return OrderResponse.from_domain(order)

    async def confirm_receipt(self, db: AsyncSession, order_id: str, token: str) -> OrderResponse:
        """Buyer confirms receipt via the link; escrow is settled."""
        try:
            order = await self._sm.lock(db, order_id)
            self._check_token(order, token)
            order = await self._sm.transition(
                db,
                order_id,
                S.COMPLETED,
                expected=S(order.status),
                reason="buyer confirmed receipt",
            )
            supplier = await self._maybe_party(db, order.supplier_id)
            courier = await self._maybe_party(db, order.courier_id)
            messages = self._message(
                supplier,
                templates.supplier_order_completed(order.id, order.buyer_price),
                order,
                "supplier_order_completed",
            )
            if order.shipping_cost:
                messages += self._message(
                    courier,
                    templates.courier_order_completed(order.id, order.shipping_cost),
                    order,
                    "courier_order_completed",
                )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await self._notify(messages)
        return OrderResponse.from_domain(order)

    async def open_dispute(
        self,
        db: AsyncSession,
        order_id: str,
        token: str,
        reason: str,
        image_url: str | None = None,
    ) -> OrderResponse:
        """Buyer reports a problem. A photo is scored as evidence, never as a verdict."""
        order = await self._order(db, order_id)
        self._check_token(order, token)
        if not can_transition(order.status, S.DISPUTE_CHECK.value):
            raise InvalidTransitionError(order_id, order.status, S.DISPUTE_CHECK.value)

        confidence = None
        verifier = self._get_verifier() if image_url else None
        if verifier is not None and image_url:
            try:
                judgment = await verifier.analyze(image_url, DISPUTE_INSTRUCTIONS)
                confidence = judgment.confidence if judgment.is_damaged else 0.0
            except VisionUnavailableError as exc:
                logger.warning("Dispute photo for order %s not scored: %s", order_id, exc.message)

        try:
            order = await self._sm.lock(db, order_id)
            order = await self._sm.transition(
                db,
                order_id,
                S.DISPUTE_CHECK,
                expected=S(order.status),
                changes={
                    "dispute_reason": reason,
                    "dispute_image_url": image_url,
                    "dispute_confidence": confidence,
                },
                reason="buyer reported a problem",
            )
            buyer = await self._maybe_party(db, order.buyer_id)
            messages = self._message(
                buyer, templates.buyer_dispute_received(order.id), order, "buyer_dispute_received"
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await self._notify(messages)
        return OrderResponse.from_domain(order)

    async def track_location(self, db: AsyncSession, req: TrackLocationRequest) -> OrderResponse:
        """Live location from the carrier; only accepted while shipping."""
        GeoPoint(req.latitude, req.longitude)
        order = await self._order(db, req.order_id)
        self._check_carrier(order, req.party_id)
        try:
            updated = await self._repo.update_fields(
                db,
                req.order_id,
                {
                    "courier_latitude": req.latitude,
                    "courier_longitude": req.longitude,
                    "courier_location_updated_at": utc_now(),
                },
                [S.SHIPPING.value],
            )
            if updated is None:
                raise InvalidTransitionError(req.order_id, order.status, "location update")
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return OrderResponse.from_domain(updated)

    # ------------------------------------------------------------------
    # Offer expiry
    # ------------------------------------------------------------------

    async def escalate_round(
        self, db: AsyncSession, order_id: str, kind: BroadcastKind
    ) -> list[OutboundMessage]:
        """Next step for an order whose offers expired. The caller commits."""
        order = await self._sm.lock(db, order_id)
        if order.status != PRE_MATCH_STATUS[kind].value:
            return []
        if not await self._coordinator.round_is_exhausted(db, order_id, kind):
            return []
        return await self._fan_out(db, order, kind, settings.BROADCAST_MAX_ROUNDS)

    async def expire_offers(self, db: AsyncSession) -> dict[str, int]:
        """Expire unanswered offers, then re-broadcast or give up per order."""
        try:
            affected = await self._coordinator.expire_offers(db, settings.OFFER_TTL_MINUTES)
            messages: list[OutboundMessage] = []
            for order_id, kind in affected:
                messages += await self.escalate_round(db, order_id, BroadcastKind(kind))
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await self._notify(messages)
        return {"rounds_expired": len(affected), "messages": len(messages)}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_order(self, db: AsyncSession, order_id: str) -> OrderResponse:
        return OrderResponse.from_domain(await self._order(db, order_id))

    async def list_orders(
        self,
        db: AsyncSession,
        party_id: str,
        status: OrderStatus | None,
        limit: int,
        cursor: str | None,
    ) -> OrderListResponse:
        statuses = [status.value] if status else None
        orders = await self._repo.list_by_party(db, party_id, statuses, limit + 1, cursor)
        has_more = len(orders) > limit
        if has_more:
            orders = orders[:limit]
        return OrderListResponse(
            orders=[OrderResponse.from_domain(o) for o in orders],
            next_cursor=orders[-1].id if has_more else None,
        )
