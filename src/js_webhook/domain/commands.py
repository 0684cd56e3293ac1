"""WhatsApp command grammar.

Commands are case-insensitive; '#' and whitespace both separate tokens, so
"TIDAK 1a2b3c4d" and "TIDAK#1a2b3c4d" are the same command. The order
reference is an order-id prefix and may be omitted when the sender has only
one open offer or order the command could apply to.

    SANGGUP KIRIM [ref]      supplier accepts, delivers itself
    SANGGUP AMBIL [ref]      supplier accepts, needs a courier
    SANGGUP#ref#price        supplier accepts at its own price
    TIDAK [ref]              supplier / courier declines
    KIRIM SENDIRI [ref]      stuck supplier switches to self-delivery
    CARI KURIR [ref]         stuck supplier retries the courier search
    AMBIL [ref]              courier takes a job
    SETUJU / TOLAK [ref]     buyer approves / rejects a supplier's price
    BATAL [ref]              buyer cancels
    LOKASI#lat#lng           location update
    BANTUAN / HELP           help text
"""

import re
from dataclasses import dataclass
from enum import Enum


class CommandName(str, Enum):
    SUPPLY_SELF = "supply_self"
    SUPPLY_COURIER = "supply_courier"
    SUPPLY_OFFER = "supply_offer"
    DECLINE = "decline"
    SELF_DELIVER = "self_deliver"
    RETRY_COURIER = "retry_courier"
    TAKE_JOB = "take_job"
    APPROVE = "approve"
    REJECT_OFFER = "reject_offer"
    CANCEL = "cancel"
    LOCATION = "location"
    HELP = "help"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Command:
    name: CommandName
    ref: str | None = None
    price: int | None = None
    latitude: float | None = None
    longitude: float | None = None


MIN_REF_LENGTH = 6

# Our outgoing templates open with one of these; the gateway sometimes echoes
# them back to the webhook.
BOT_MARKERS: tuple[str, ...] = (
    "✅", "❌", "⚠️", "🛒", "🚚", "📦", "💰", "🎉", "🙏", "👍",
    "📩", "🔎", "📝", "⚖️", "ℹ️", "😔", "📍",
)

_SEPARATORS = re.compile(r"[#\s]+")
_REF = re.compile(r"^[0-9a-f][0-9a-f-]*$")

_SIMPLE: dict[str, CommandName] = {
    "TIDAK": CommandName.DECLINE,
    "AMBIL": CommandName.TAKE_JOB,
    "SETUJU": CommandName.APPROVE,
    "TOLAK": CommandName.REJECT_OFFER,
    "BATAL": CommandName.CANCEL,
}

_TWO_WORD: dict[tuple[str, str], CommandName] = {
    ("SANGGUP", "KIRIM"): CommandName.SUPPLY_SELF,
    ("SANGGUP", "AMBIL"): CommandName.SUPPLY_COURIER,
    ("KIRIM", "SENDIRI"): CommandName.SELF_DELIVER,
    ("CARI", "KURIR"): CommandName.RETRY_COURIER,
}


def is_bot_echo(text: str) -> bool:
    stripped = (text or "").lstrip()
    return stripped.startswith(BOT_MARKERS) or "sent via fonnte.com" in stripped.lower()


def _ref(token: str | None) -> tuple[bool, str | None]:
    """(valid, ref). A missing token is valid and means 'no reference'."""
    if token is None:
        return True, None
    ref = token.lower()
    return (bool(_REF.match(ref)), ref)


def _price(token: str) -> int | None:
    digits = token.upper().removeprefix("RP").replace(".", "").replace(",", "")
    if not digits.isdigit():
        return None
    value = int(digits)
    return value if value > 0 else None


def _coordinate(token: str) -> float | None:
    try:
        return float(token.replace(",", "."))
    except ValueError:
        return None


def parse_command(text: str) -> Command:
    tokens = [t for t in _SEPARATORS.split((text or "").strip()) if t]
    if not tokens:
        return Command(CommandName.UNKNOWN)
    head = tokens[0].upper()
    rest = tokens[1:]

    if head in ("BANTUAN", "HELP"):
        return Command(CommandName.HELP)

    if head == "LOKASI":
        if len(rest) != 2:
            return Command(CommandName.LOCATION)
        return Command(
            CommandName.LOCATION, latitude=_coordinate(rest[0]), longitude=_coordinate(rest[1])
        )

    if rest:
        name = _TWO_WORD.get((head, rest[0].upper()))
        if name is not None:
            valid, ref = _ref(rest[1] if len(rest) > 1 else None)
            return Command(name, ref=ref) if valid and len(rest) <= 2 else Command(CommandName.UNKNOWN)

    if head == "SANGGUP":
        # SANGGUP#ref#price, or a bare SANGGUP [ref] meaning self-delivery
        if len(rest) == 2:
            valid, ref = _ref(rest[0])
            price = _price(rest[1])
            if valid and price is not None:
                return Command(CommandName.SUPPLY_OFFER, ref=ref, price=price)
            return Command(CommandName.UNKNOWN)
        if len(rest) <= 1:
            valid, ref = _ref(rest[0] if rest else None)
            if valid:
                return Command(CommandName.SUPPLY_SELF, ref=ref)
        return Command(CommandName.UNKNOWN)

    name = _SIMPLE.get(head)
    if name is not None and len(rest) <= 1:
        valid, ref = _ref(rest[0] if rest else None)
        if valid:
            return Command(name, ref=ref)
    return Command(CommandName.UNKNOWN)
