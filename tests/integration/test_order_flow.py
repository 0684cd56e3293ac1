"""Full self-delivery order over HTTP and the WhatsApp webhook.

register parties -> create order -> supplier replies on WhatsApp -> pay ->
pickup -> deliver -> buyer confirms with the token -> escrow settled.
Each run uses fresh phone numbers and a random spot on the map so earlier
runs' suppliers do not compete for the order.
"""

import random
import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy import text

from src.js_common.database import async_session_factory

pytestmark = [pytest.mark.integration, pytest.mark.asyncio(loop_scope="session")]


def _phone() -> str:
    return "62899" + str(uuid.uuid4().int)[:8]


async def _register(client: AsyncClient, headers: dict, **fields: object) -> dict:
    resp = await client.post("/api/v1/parties", json=fields, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


async def _delivery_token(order_id: str) -> str:
    async with async_session_factory() as db:
        result = await db.execute(
            text("SELECT delivery_token FROM orders WHERE id = :id"), {"id": order_id}
        )
        return str(result.scalar_one())


async def test_self_delivery_order_settles_escrow(
    client: AsyncClient, operator_headers: dict[str, str]
) -> None:
    lat = round(random.uniform(-8.0, -6.0), 5)
    lng = round(random.uniform(106.0, 112.0), 5)
    supplier_phone = _phone()
    buyer = await _register(
        client, operator_headers, phone=_phone(), name="Warung Bu Sri", role="buyer",
        latitude=lat, longitude=lng,
    )
    supplier = await _register(
        client, operator_headers, phone=supplier_phone, name="Agen Beras Jaya", role="supplier",
        latitude=lat + 0.01, longitude=lng, address="Jl. Pasar 3",
    )

    resp = await client.post(
        "/api/v1/orders",
        json={
            "buyer_id": buyer["id"],
            "product_name": "Beras medium",
            "quantity": 25,
            "weight_kg": 25.0,
            "buyer_price": 300000,
            "delivery_latitude": lat,
            "delivery_longitude": lng,
            "delivery_address": "Jl. Kenanga 7",
        },
        headers=operator_headers,
    )
    assert resp.status_code == 201, resp.text
    created = resp.json()["data"]
    order = created["order"]
    assert created["suppliers_contacted"] >= 1
    assert created["outcome"] == "broadcast"
    assert order["total_amount"] == 315000

    hook = await client.post(
        "/api/v1/webhooks/whatsapp",
        json={"sender": supplier_phone, "message": f"SANGGUP KIRIM {order['ref']}"},
    )
    assert hook.json()["data"]["command"] == "supply_self"

    detail = (await client.get(f"/api/v1/orders/{order['id']}", headers=operator_headers)).json()
    assert detail["data"]["status"] == "waiting_payment"
    assert detail["data"]["supplier_id"] == supplier["id"]

    paid = await client.post(f"/api/v1/orders/{order['id']}/pay", headers=operator_headers)
    assert paid.json()["data"]["status"] == "paid_held"
    wallet = (await client.get(f"/api/v1/wallets/{supplier['id']}", headers=operator_headers)).json()
    assert wallet["data"]["escrow_held"] == 315000

    for step in ("pickup", "deliver"):
        resp = await client.post(
            f"/api/v1/orders/{order['id']}/{step}",
            json={"party_id": supplier["id"]},
            headers=operator_headers,
        )
        assert resp.status_code == 200, resp.text

    token = await _delivery_token(order["id"])
    done = await client.post(
        f"/api/v1/orders/{order['id']}/confirm", json={"token": token}, headers=operator_headers
    )
    assert done.json()["data"]["status"] == "completed"

    wallet = (await client.get(f"/api/v1/wallets/{supplier['id']}", headers=operator_headers)).json()
    assert wallet["data"]["available"] == 300000
    assert wallet["data"]["escrow_held"] == 0


async def test_second_acceptance_is_refused(
    client: AsyncClient, operator_headers: dict[str, str]
) -> None:
    lat = round(random.uniform(-8.0, -6.0), 5)
    lng = round(random.uniform(106.0, 112.0), 5)
    buyer = await _register(
        client, operator_headers, phone=_phone(), name="Kedai Pak Dul", role="buyer",
        latitude=lat, longitude=lng,
    )
    suppliers = [
        await _register(
            client, operator_headers, phone=_phone(), name=f"Agen {i}", role="supplier",
            latitude=lat + 0.005 * (i + 1), longitude=lng,
        )
        for i in range(2)
    ]
    resp = await client.post(
        "/api/v1/orders",
        json={
            "buyer_id": buyer["id"],
            "product_name": "Telur ayam",
            "quantity": 10,
            "unit": "tray",
            "weight_kg": 15.0,
            "buyer_price": 450000,
            "delivery_latitude": lat,
            "delivery_longitude": lng,
            "delivery_address": "Jl. Melati 2",
        },
        headers=operator_headers,
    )
    order_id = resp.json()["data"]["order"]["id"]

    first = await client.post(
        f"/api/v1/orders/{order_id}/supplier-response",
        json={"supplier_id": suppliers[0]["id"], "accept": True},
        headers=operator_headers,
    )
    assert first.json()["data"]["outcome"] == "matched"

    second = await client.post(
        f"/api/v1/orders/{order_id}/supplier-response",
        json={"supplier_id": suppliers[1]["id"], "accept": True},
        headers=operator_headers,
    )
    assert second.status_code == 409
