"""CommandDispatcher — route a parsed command to its handler.

The command -> handler table and the per-role allow-list are given at
construction. Domain errors raised by a handler become a reply to the
sender; anything else propagates to the webhook endpoint.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.js_common.enums import PartyRole
from src.js_common.errors import (
    AlreadyResolvedError,
    AmbiguousOrderReferenceError,
    AppError,
    BroadcastNotFoundError,
    CapacityExceededError,
    InvalidLocationError,
    InvalidTransitionError,
    OrderAccessDeniedError,
    OrderNotFoundError,
)
from src.js_notify.application import templates
from src.js_party.domain.models import Party
from src.js_webhook.application.handlers import Handler
from src.js_webhook.domain.commands import Command, CommandName

logger = logging.getLogger(__name__)

_EVERYONE = frozenset({CommandName.LOCATION, CommandName.HELP})

ROLE_COMMANDS: dict[str, frozenset[CommandName]] = {
    PartyRole.SUPPLIER.value: _EVERYONE | {
        CommandName.SUPPLY_SELF,
        CommandName.SUPPLY_COURIER,
        CommandName.SUPPLY_OFFER,
        CommandName.DECLINE,
        CommandName.SELF_DELIVER,
        CommandName.RETRY_COURIER,
    },
    PartyRole.COURIER.value: _EVERYONE | {CommandName.TAKE_JOB, CommandName.DECLINE},
    PartyRole.BUYER.value: _EVERYONE | {
        CommandName.APPROVE,
        CommandName.REJECT_OFFER,
        CommandName.CANCEL,
    },
}


def error_reply(exc: AppError, command: Command) -> str:
    if isinstance(exc, AlreadyResolvedError):
        return templates.job_already_taken(exc.order_id)
    if isinstance(exc, CapacityExceededError):
        return templates.capacity_full(settings.SUPPLIER_MAX_ACTIVE_ORDERS)
    if isinstance(exc, AmbiguousOrderReferenceError):
        return templates.ambiguous_reference()
    if isinstance(exc, (OrderNotFoundError, BroadcastNotFoundError, OrderAccessDeniedError)):
        return templates.order_not_found(command.ref)
    if isinstance(exc, InvalidTransitionError):
        return templates.action_not_possible(exc.order_id, exc.current)
    if isinstance(exc, InvalidLocationError):
        return templates.location_format_help()
    return templates.unknown_command()


class CommandDispatcher:
    def __init__(
        self,
        handlers: dict[CommandName, Handler],
        role_commands: dict[str, frozenset[CommandName]] | None = None,
    ) -> None:
        self._handlers = dict(handlers)
        self._role_commands = role_commands or ROLE_COMMANDS

    def allows(self, role: str, name: CommandName) -> bool:
        return name in self._role_commands.get(role, frozenset()) and name in self._handlers

    async def dispatch(self, db: AsyncSession, sender: Party, command: Command) -> list[str]:
        if not self.allows(sender.role, command.name):
            return [templates.unknown_command()]
        handler = self._handlers[command.name]
        try:
            return await handler(db, sender, command)
        except AppError as exc:
            logger.info(
                "Command %s from %s refused: %s", command.name.value, sender.id, exc.message
            )
            return [error_reply(exc, command)]
