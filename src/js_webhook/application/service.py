"""WebhookService — one inbound WhatsApp event.

Order of checks: device/status callbacks and our own echoed messages are
ignored, the sender is rate limited per phone number, unknown numbers get a
sign-up hint, then the text (or a shared location pin) is parsed and
dispatched. Replies go out through the NotificationDispatcher.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.js_common.errors import RateLimitError
from src.js_common.phone import mask_phone, normalize_phone
from src.js_gateway.middleware.rate_limit import FixedWindowRateLimiter
from src.js_notify.application import templates
from src.js_notify.application.dispatcher import NotificationDispatcher, get_dispatcher
from src.js_notify.domain.models import OutboundMessage
from src.js_party.domain.repository import PartyRepositoryProtocol
from src.js_party.infrastructure.persistence import PartyRepository
from src.js_webhook.application.dispatcher import CommandDispatcher
from src.js_webhook.application.handlers import CommandHandlers, build_handler_map
from src.js_webhook.application.schemas import WebhookResult, WhatsAppWebhookPayload
from src.js_webhook.domain.commands import Command, CommandName, is_bot_echo, parse_command

logger = logging.getLogger(__name__)


class WebhookService:
    def __init__(
        self,
        commands: CommandDispatcher | None = None,
        parties: PartyRepositoryProtocol | None = None,
        limiter: FixedWindowRateLimiter | None = None,
        notifier: NotificationDispatcher | None = None,
    ) -> None:
        self._commands = commands or CommandDispatcher(build_handler_map(CommandHandlers()))
        self._parties: PartyRepositoryProtocol = parties or PartyRepository()
        self._limiter = limiter or FixedWindowRateLimiter()
        self._notifier = notifier

    async def _reply(self, phone: str, texts: list[str]) -> int:
        if not texts:
            return 0
        notifier = self._notifier or get_dispatcher()
        return await notifier.dispatch(
            [OutboundMessage(phone=phone, text=t, purpose="webhook_reply") for t in texts]
        )

    async def handle(self, db: AsyncSession, payload: WhatsAppWebhookPayload) -> WebhookResult:
        if payload.is_connection_event:
            logger.info("WhatsApp device %s: %s", payload.device, payload.status)
            return WebhookResult(type="connection")
        if payload.is_status_callback or not payload.sender:
            return WebhookResult(type="status")

        try:
            phone = normalize_phone(payload.sender)
        except ValueError:
            logger.warning("Webhook sender %r is not a phone number", payload.sender)
            return WebhookResult(type="ignored")

        text = payload.message or ""
        if text and is_bot_echo(text):
            return WebhookResult(type="echo")

        try:
            await self._limiter.hit("webhook", phone, settings.WEBHOOK_RATE_LIMIT_PER_MIN)
        except RateLimitError:
            return WebhookResult(type="rate_limited")

        sender = await self._parties.get_by_phone(db, phone)
        if sender is None or not sender.is_active:
            sent = await self._reply(phone, [templates.not_registered()])
            return WebhookResult(type="unregistered", replies=sent)

        pin = payload.shared_location()
        if pin is not None:
            command = Command(CommandName.LOCATION, latitude=pin[0], longitude=pin[1])
        elif text:
            command = parse_command(text)
        else:
            return WebhookResult(type="ignored")

        logger.info(
            "Webhook %s from %s (%s)", command.name.value, mask_phone(phone), sender.role
        )
        if command.name == CommandName.UNKNOWN:
            replies = [templates.unknown_command()]
        else:
            replies = await self._commands.dispatch(db, sender, command)
        sent = await self._reply(phone, replies)
        return WebhookResult(type="command", command=command.name.value, replies=sent)
