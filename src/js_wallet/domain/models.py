"""Domain models for js_wallet — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime

from src.js_common.enums import LedgerEntryType

# System wallet that collects the service fee on every completed order.
PLATFORM_PARTY_ID = "PLATFORM"


@dataclass
class Wallet:
    party_id: str
    available: int       # rupiah, withdrawable
    escrow_held: int     # rupiah, paid by buyers and not yet released/refunded
    total_earned: int    # rupiah, lifetime payouts received
    version: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class LedgerEntry:
    id: int                   # BIGSERIAL
    party_id: str
    order_id: str | None
    entry_type: str           # LedgerEntryType value
    amount: int               # rupiah, positive=credit negative=debit
    balance_after: int        # snapshot of the balance the entry touched
    description: str | None = None
    created_at: datetime | None = None


@dataclass
class Payout:
    """One payee line of a settlement."""

    party_id: str
    amount: int
    entry_type: str = LedgerEntryType.PAYOUT.value
