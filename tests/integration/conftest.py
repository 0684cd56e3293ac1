"""Integration-test fixtures.

Needs PostgreSQL/PostGIS with migrations applied and Redis, so the whole
directory is skipped unless JS_INTEGRATION=1. All tests share one event loop
so the module-level engine and Redis pools stay valid for the session.
"""

import os
import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.main import app


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if os.getenv("JS_INTEGRATION") == "1":
        return
    skip = pytest.mark.skip(reason="set JS_INTEGRATION=1 to run against PostgreSQL + Redis")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip)


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def client() -> AsyncClient:  # type: ignore[override]
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def operator_headers(client: AsyncClient) -> dict[str, str]:
    """Registers a throwaway operator and returns its Bearer header."""
    uid = uuid.uuid4().hex[:8]
    creds = {"username": f"ops_{uid}", "email": f"ops_{uid}@example.com", "password": "Gudang123"}
    await client.post("/api/v1/auth/register", json=creds)
    resp = await client.post(
        "/api/v1/auth/login",
        json={"username": creds["username"], "password": creds["password"]},
    )
    return {"Authorization": f"Bearer {resp.json()['data']['access_token']}"}
