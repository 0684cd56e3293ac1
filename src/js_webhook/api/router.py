"""Inbound WhatsApp webhook. Authenticated by WEBHOOK_TOKEN, not operator JWT."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.js_common.database import get_db_session
from src.js_common.response import ApiResponse, success_response
from src.js_gateway.auth.dependencies import verify_webhook_token
from src.js_webhook.application.schemas import WhatsAppWebhookPayload
from src.js_webhook.application.service import WebhookService

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

_service = WebhookService()


@router.post("/whatsapp", dependencies=[Depends(verify_webhook_token)])
async def whatsapp_webhook(
    body: WhatsAppWebhookPayload,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.handle(db, body)
    return success_response(data.model_dump(), request)
