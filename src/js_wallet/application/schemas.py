"""Pydantic schemas and cursor utilities for js_wallet API."""

import base64
import json

from pydantic import BaseModel

from src.js_common.money import rupiah_to_display

# ---------------------------------------------------------------------------
# Cursor-based pagination utilities
# ---------------------------------------------------------------------------


def cursor_encode(last_id: int) -> str:
    """Encode a BIGINT primary key into an opaque Base64 cursor string."""
    payload = json.dumps({"id": last_id})
    return base64.b64encode(payload.encode()).decode()


def cursor_decode(cursor: str | None) -> int | None:
    """Decode a cursor string back to the last seen id. Returns None on error."""
    if cursor is None:
        return None
    try:
        payload = json.loads(base64.b64decode(cursor.encode()).decode())
        return int(payload["id"])
    except (ValueError, KeyError, TypeError):
        return None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class WalletResponse(BaseModel):
    party_id: str
    available: int
    available_display: str
    escrow_held: int
    escrow_held_display: str
    total_earned: int
    total_earned_display: str

    @classmethod
    def from_amounts(
        cls, party_id: str, available: int, escrow_held: int, total_earned: int
    ) -> "WalletResponse":
        return cls(
            party_id=party_id,
            available=available,
            available_display=rupiah_to_display(available),
            escrow_held=escrow_held,
            escrow_held_display=rupiah_to_display(escrow_held),
            total_earned=total_earned,
            total_earned_display=rupiah_to_display(total_earned),
        )


class LedgerEntryItem(BaseModel):
    id: int
    order_id: str | None
    entry_type: str
    amount: int
    amount_display: str
    balance_after: int
    description: str | None
    created_at: str  # ISO8601 string


class LedgerResponse(BaseModel):
    items: list[LedgerEntryItem]
    next_cursor: str | None
    has_more: bool
