"""Command handlers for registered senders.

Each handler takes (db, sender, command) and returns the replies for the
sender. Everything the other parties need to hear is sent by
OrderWorkflowService itself; a handler only answers the person who typed the
command. build_handler_map() is the explicit command -> handler table the
webhook dispatcher is constructed with.
"""

import logging
from collections.abc import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from src.js_broadcast.application.coordinator import BroadcastCoordinator
from src.js_broadcast.domain.models import OutcomeKind
from src.js_common.enums import BroadcastKind, DeliveryMethod, OrderStatus, PartyRole
from src.js_common.errors import (
    AlreadyResolvedError,
    AmbiguousOrderReferenceError,
    OrderNotFoundError,
)
from src.js_notify.application import templates
from src.js_order.application.schemas import TrackLocationRequest
from src.js_order.application.service import OrderWorkflowService
from src.js_order.domain.repository import OrderRepositoryProtocol
from src.js_order.infrastructure.persistence import OrderRepository
from src.js_party.application.schemas import UpdateLocationRequest
from src.js_party.application.service import PartyApplicationService
from src.js_party.domain.models import Party
from src.js_webhook.domain.commands import MIN_REF_LENGTH, Command, CommandName

logger = logging.getLogger(__name__)

Handler = Callable[[AsyncSession, Party, Command], Awaitable[list[str]]]

_KIND_BY_ROLE: dict[str, BroadcastKind] = {
    PartyRole.SUPPLIER.value: BroadcastKind.SUPPLIER,
    PartyRole.COURIER.value: BroadcastKind.COURIER,
}


class CommandHandlers:
    def __init__(
        self,
        workflow: OrderWorkflowService | None = None,
        coordinator: BroadcastCoordinator | None = None,
        orders: OrderRepositoryProtocol | None = None,
        parties: PartyApplicationService | None = None,
    ) -> None:
        self._workflow = workflow or OrderWorkflowService()
        self._coordinator = coordinator or BroadcastCoordinator()
        self._orders: OrderRepositoryProtocol = orders or OrderRepository()
        self._parties = parties or PartyApplicationService()

    # ------------------------------------------------------------------
    # Reference resolution
    # ------------------------------------------------------------------

    @staticmethod
    def _check_ref(ref: str | None) -> None:
        if ref is not None and len(ref) < MIN_REF_LENGTH:
            raise AmbiguousOrderReferenceError(ref)

    async def _offer_order_id(
        self,
        db: AsyncSession,
        sender: Party,
        kind: BroadcastKind,
        ref: str | None,
        accepting: bool = False,
    ) -> str:
        """The order of the one open offer made to the sender that matches ref.

        An acceptance with no open offer left is told the job is taken when
        the sender's offer was closed because the order moved on.
        """
        self._check_ref(ref)
        offers = await self._coordinator.open_offers_for(db, sender.id, kind, ref)
        order_ids = sorted({o.order_id for o in offers})
        if not order_ids:
            if accepting:
                taken = await self._coordinator.taken_offers_for(db, sender.id, kind, ref)
                if taken:
                    raise AlreadyResolvedError(taken[0].order_id)
            raise OrderNotFoundError(ref or "-")
        if len(order_ids) > 1:
            raise AmbiguousOrderReferenceError(ref or "-")
        return order_ids[0]

    async def _order_id(
        self, db: AsyncSession, sender: Party, ref: str | None, statuses: set[OrderStatus]
    ) -> str:
        """The one order involving the sender, in one of `statuses`, matching ref."""
        self._check_ref(ref)
        wanted = {s.value for s in statuses}
        if ref is not None:
            orders = await self._orders.find_by_ref(db, ref, sender.id)
        else:
            orders = await self._orders.list_by_party(db, sender.id, sorted(wanted), 2, None)
        matches = [o for o in orders if o.status in wanted]
        if not matches:
            raise OrderNotFoundError(ref or "-")
        if len(matches) > 1:
            raise AmbiguousOrderReferenceError(ref or "-")
        return matches[0].id

    # ------------------------------------------------------------------
    # Suppliers
    # ------------------------------------------------------------------

    async def _supply(
        self,
        db: AsyncSession,
        sender: Party,
        command: Command,
        method: DeliveryMethod,
        price: int | None = None,
    ) -> list[str]:
        order_id = await self._offer_order_id(
            db, sender, BroadcastKind.SUPPLIER, command.ref, accepting=True
        )
        outcome = await self._workflow.respond_as_supplier(
            db, order_id, sender.id, True, method, price
        )
        if outcome.kind != OutcomeKind.MATCHED or outcome.order is None:
            return []
        return [templates.supplier_accepted(order_id, outcome.order.status)]

    async def supply_self(self, db: AsyncSession, sender: Party, command: Command) -> list[str]:
        return await self._supply(db, sender, command, DeliveryMethod.SELF)

    async def supply_courier(self, db: AsyncSession, sender: Party, command: Command) -> list[str]:
        return await self._supply(db, sender, command, DeliveryMethod.COURIER)

    async def supply_offer(self, db: AsyncSession, sender: Party, command: Command) -> list[str]:
        return await self._supply(db, sender, command, DeliveryMethod.SELF, command.price)

    async def decline(self, db: AsyncSession, sender: Party, command: Command) -> list[str]:
        kind = _KIND_BY_ROLE[sender.role]
        order_id = await self._offer_order_id(db, sender, kind, command.ref)
        if kind == BroadcastKind.SUPPLIER:
            await self._workflow.respond_as_supplier(db, order_id, sender.id, False)
        else:
            await self._workflow.respond_as_courier(db, order_id, sender.id, False)
        return []

    async def self_deliver(self, db: AsyncSession, sender: Party, command: Command) -> list[str]:
        order_id = await self._order_id(db, sender, command.ref, {OrderStatus.STUCK_NO_COURIER})
        await self._workflow.switch_to_self_delivery(db, order_id, sender.id)
        return []

    async def retry_courier(self, db: AsyncSession, sender: Party, command: Command) -> list[str]:
        order_id = await self._order_id(db, sender, command.ref, {OrderStatus.STUCK_NO_COURIER})
        order = await self._workflow.retry_courier_search(db, order_id, sender.id)
        if order.status == OrderStatus.NEGOTIATING_COURIER:
            return [templates.courier_search_restarted(order_id)]
        return []

    # ------------------------------------------------------------------
    # Couriers
    # ------------------------------------------------------------------

    async def take_job(self, db: AsyncSession, sender: Party, command: Command) -> list[str]:
        order_id = await self._offer_order_id(
            db, sender, BroadcastKind.COURIER, command.ref, accepting=True
        )
        await self._workflow.respond_as_courier(db, order_id, sender.id, True)
        return []

    # ------------------------------------------------------------------
    # Buyers
    # ------------------------------------------------------------------

    async def approve(self, db: AsyncSession, sender: Party, command: Command) -> list[str]:
        order_id = await self._order_id(
            db, sender, command.ref, {OrderStatus.WAITING_BUYER_APPROVAL}
        )
        await self._workflow.approve_offer(db, order_id, sender.id)
        return []

    async def reject_offer(self, db: AsyncSession, sender: Party, command: Command) -> list[str]:
        order_id = await self._order_id(
            db, sender, command.ref, {OrderStatus.WAITING_BUYER_APPROVAL}
        )
        await self._workflow.reject_offer(db, order_id, sender.id)
        return []

    async def cancel(self, db: AsyncSession, sender: Party, command: Command) -> list[str]:
        cancellable = {
            OrderStatus.SEARCHING_SUPPLIER,
            OrderStatus.WAITING_BUYER_APPROVAL,
            OrderStatus.NEGOTIATING_COURIER,
            OrderStatus.STUCK_NO_COURIER,
            OrderStatus.WAITING_PAYMENT,
        }
        order_id = await self._order_id(db, sender, command.ref, cancellable)
        await self._workflow.cancel(db, order_id, sender.id, "cancelled via WhatsApp")
        return []

    # ------------------------------------------------------------------
    # Anyone
    # ------------------------------------------------------------------

    async def location(self, db: AsyncSession, sender: Party, command: Command) -> list[str]:
        lat, lng = command.latitude, command.longitude
        if lat is None or lng is None or not (-90 <= lat <= 90 and -180 <= lng <= 180):
            return [templates.location_format_help()]
        await self._parties.update_location(
            db, sender.id, UpdateLocationRequest(latitude=lat, longitude=lng)
        )
        if sender.role != PartyRole.BUYER.value:
            await self._track_active_delivery(db, sender, lat, lng)
        return [templates.location_updated()]

    async def _track_active_delivery(
        self, db: AsyncSession, sender: Party, lat: float, lng: float
    ) -> None:
        shipping = await self._orders.list_by_party(
            db, sender.id, [OrderStatus.SHIPPING.value], 2, None
        )
        for order in shipping:
            carrier = order.supplier_id if order.is_self_delivery else order.courier_id
            if carrier == sender.id:
                await self._workflow.track_location(
                    db,
                    TrackLocationRequest(
                        order_id=order.id, party_id=sender.id, latitude=lat, longitude=lng
                    ),
                )

    async def help(self, db: AsyncSession, sender: Party, command: Command) -> list[str]:
        return [templates.help_text(sender.role)]


def build_handler_map(handlers: CommandHandlers) -> dict[CommandName, Handler]:
    return {
        CommandName.SUPPLY_SELF: handlers.supply_self,
        CommandName.SUPPLY_COURIER: handlers.supply_courier,
        CommandName.SUPPLY_OFFER: handlers.supply_offer,
        CommandName.DECLINE: handlers.decline,
        CommandName.SELF_DELIVER: handlers.self_deliver,
        CommandName.RETRY_COURIER: handlers.retry_courier,
        CommandName.TAKE_JOB: handlers.take_job,
        CommandName.APPROVE: handlers.approve,
        CommandName.REJECT_OFFER: handlers.reject_offer,
        CommandName.CANCEL: handlers.cancel,
        CommandName.LOCATION: handlers.location,
        CommandName.HELP: handlers.help,
    }
