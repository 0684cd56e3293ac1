"""Unit tests for AdminService: dispute resolution and maintenance jobs."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.js_admin.application.service import AdminService
from src.js_common.errors import AlreadyResolvedError
from src.js_notify.application import templates
from src.js_order.application.schemas import CreateOrderRequest
from src.js_wallet.domain.models import PLATFORM_PARTY_ID

BUYER_PHONE = "6281100000001"
SUPPLIER_PHONE = "6281100000011"


@pytest.fixture
def admin(market):
    market.add_supplier("s1", SUPPLIER_PHONE)
    market.admin = AdminService(
        state_machine=market.state_machine,
        workflow=market.workflow,
        parties=market.parties,
        dispatcher=market.dispatcher,  # type: ignore[arg-type]
    )
    return market


async def _disputed(market) -> str:
    resp = await market.workflow.create_order(
        market.db,
        CreateOrderRequest(
            buyer_id="buyer",
            product_name="Gula pasir",
            quantity=20,
            weight_kg=20.0,
            buyer_price=200000,
            delivery_latitude=-6.2,
            delivery_longitude=106.85,
            delivery_address="Pasar Minggu blok C",
        ),
    )
    order_id = resp.order.id
    await market.workflow.respond_as_supplier(market.db, order_id, "s1", True)
    await market.workflow.confirm_payment(market.db, order_id)
    await market.workflow.confirm_pickup(market.db, order_id, "s1")
    await market.workflow.mark_delivered(market.db, order_id, "s1")
    token = market.order(order_id).delivery_token
    await market.workflow.open_dispute(market.db, order_id, token, "half the sacks are wet")
    return order_id


class TestResolveDispute:
    async def test_refund_returns_escrow_to_buyer(self, admin) -> None:
        order_id = await _disputed(admin)
        resp = await admin.admin.resolve_dispute(admin.db, order_id, "refund", "photos confirm")

        assert resp.status == "refunded"
        wallets = admin.wallets.wallets
        assert wallets["s1"].escrow_held == 0
        assert wallets["buyer"].available == 210000
        assert wallets[PLATFORM_PARTY_ID].available == 0
        assert admin.wallets.order_net(order_id) == 0
        assert admin.orders.history[-1][3] == "photos confirm"

    async def test_complete_pays_supplier_and_fee(self, admin) -> None:
        order_id = await _disputed(admin)
        resp = await admin.admin.resolve_dispute(admin.db, order_id, "complete")

        assert resp.status == "completed"
        wallets = admin.wallets.wallets
        assert wallets["s1"].available == 200000
        assert wallets[PLATFORM_PARTY_ID].available == 10000
        assert admin.wallets.order_net(order_id) == 0

    async def test_parties_are_told(self, admin) -> None:
        order_id = await _disputed(admin)
        await admin.admin.resolve_dispute(admin.db, order_id, "refund")

        expected = templates.dispute_resolved(order_id, "refunded to the buyer")
        for phone in (BUYER_PHONE, SUPPLIER_PHONE):
            assert expected in [m.text for m in admin.dispatcher.to(phone)]

    async def test_only_disputed_orders(self, admin) -> None:
        order_id = await _disputed(admin)
        await admin.admin.resolve_dispute(admin.db, order_id, "complete")
        with pytest.raises(AlreadyResolvedError):
            await admin.admin.resolve_dispute(admin.db, order_id, "refund")
        admin.db.rollback.assert_awaited()

    async def test_unknown_outcome(self, admin) -> None:
        with pytest.raises(ValueError):
            await admin.admin.resolve_dispute(admin.db, "whatever", "split")


class TestMaintenance:
    async def test_retry_notifications_commits(self) -> None:
        dispatcher = AsyncMock()
        dispatcher.retry_pending.return_value = {"sent": 2, "retried": 1, "failed": 0}
        service = AdminService(
            state_machine=MagicMock(), workflow=MagicMock(), parties=MagicMock(), dispatcher=dispatcher
        )
        db = AsyncMock()
        assert await service.retry_notifications(db, 10) == {"sent": 2, "retried": 1, "failed": 0}
        dispatcher.retry_pending.assert_awaited_once_with(db, 10)
        db.commit.assert_awaited_once()

    async def test_retry_notifications_rolls_back_on_error(self) -> None:
        dispatcher = AsyncMock()
        dispatcher.retry_pending.side_effect = RuntimeError("db gone")
        service = AdminService(
            state_machine=MagicMock(), workflow=MagicMock(), parties=MagicMock(), dispatcher=dispatcher
        )
        db = AsyncMock()
        with pytest.raises(RuntimeError):
            await service.retry_notifications(db)
        db.rollback.assert_awaited_once()

    async def test_expire_offers_delegates_to_workflow(self) -> None:
        workflow = AsyncMock()
        workflow.expire_offers.return_value = {"expired": 3}
        service = AdminService(state_machine=MagicMock(), workflow=workflow, parties=MagicMock())
        assert await service.expire_offers(AsyncMock()) == {"expired": 3}
