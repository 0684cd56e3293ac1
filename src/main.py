"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from config.settings import settings
from src.js_admin.api.router import router as admin_router
from src.js_broadcast.api.router import router as broadcast_router
from src.js_common.database import engine
from src.js_common.errors import AppError
from src.js_common.redis_client import close_redis, get_redis
from src.js_common.response import error_response
from src.js_gateway.api.router import router as auth_router
from src.js_gateway.middleware.rate_limit import RateLimitMiddleware
from src.js_gateway.middleware.request_log import RequestLogMiddleware
from src.js_notify.application.dispatcher import close_dispatcher
from src.js_order.api.router import router as order_router
from src.js_order.api.router import track_router
from src.js_party.api.router import router as party_router
from src.js_wallet.api.router import router as wallet_router
from src.js_webhook.api.router import router as webhook_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: verify DB + Redis connections. Shutdown: dispose."""
    # Startup
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    await get_redis()
    yield
    # Shutdown
    await close_dispatcher()
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    resp = error_response(exc.code, exc.message)
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return JSONResponse(
        status_code=exc.http_status,
        content=resp.model_dump(),
    )


app.include_router(auth_router, prefix="/api/v1")
app.include_router(party_router, prefix="/api/v1")
app.include_router(order_router, prefix="/api/v1")
app.include_router(broadcast_router, prefix="/api/v1")
app.include_router(track_router, prefix="/api/v1")
app.include_router(wallet_router, prefix="/api/v1")
app.include_router(webhook_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
