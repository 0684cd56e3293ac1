"""Maintenance loop: offer expiry and notification retries.

Run with: python -m src.worker
"""

import asyncio
import logging

import uvloop

from config.settings import settings
from src.js_admin.application.service import AdminService
from src.js_common.database import async_session_factory, engine
from src.js_notify.application.dispatcher import close_dispatcher

logger = logging.getLogger(__name__)


async def run_once(service: AdminService) -> dict[str, dict[str, int]]:
    """One maintenance pass; each job gets its own session."""
    async with async_session_factory() as db:
        expired = await service.expire_offers(db)
    async with async_session_factory() as db:
        retried = await service.retry_notifications(db)
    return {"expire_offers": expired, "retry_notifications": retried}


async def main() -> None:
    service = AdminService()
    logger.info("Maintenance worker started (every %ds)", settings.MAINTENANCE_INTERVAL_SECONDS)
    try:
        while True:
            try:
                stats = await run_once(service)
                logger.info("Maintenance pass: %s", stats)
            except Exception:
                logger.exception("Maintenance pass failed")
            await asyncio.sleep(settings.MAINTENANCE_INTERVAL_SECONDS)
    finally:
        await close_dispatcher()
        await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvloop.run(main())
