"""Global enums — must match DB CHECK constraints exactly.

Values are the lowercase strings stored in the database and shown on the
dashboard, so they double as the wire format of the REST API.
"""

from enum import Enum


class OrderStatus(str, Enum):
    SEARCHING_SUPPLIER = "searching_supplier"
    WAITING_BUYER_APPROVAL = "waiting_buyer_approval"
    NEGOTIATING_COURIER = "negotiating_courier"
    STUCK_NO_COURIER = "stuck_no_courier"
    WAITING_PAYMENT = "waiting_payment"
    PAID_HELD = "paid_held"
    SHIPPING = "shipping"
    DELIVERED = "delivered"
    DISPUTE_CHECK = "dispute_check"
    COMPLETED = "completed"
    REFUNDED = "refunded"
    CANCELLED_BY_BUYER = "cancelled_by_buyer"
    FAILED_NO_SUPPLIER = "failed_no_supplier"


class PartyRole(str, Enum):
    BUYER = "buyer"
    SUPPLIER = "supplier"
    COURIER = "courier"


class VehicleType(str, Enum):
    MOTOR = "motor"
    MOBIL = "mobil"
    PICKUP = "pickup"
    TRUCK = "truck"


class DeliveryMethod(str, Enum):
    """Who carries the goods once a supplier has accepted."""
    SELF = "self"
    COURIER = "courier"


class BroadcastKind(str, Enum):
    SUPPLIER = "supplier"
    COURIER = "courier"


class BroadcastResponse(str, Enum):
    """Terminal state of a single broadcast offer. NULL in the DB means still open."""
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    STALE = "stale"      # another candidate won the job
    EXPIRED = "expired"  # nobody answered within OFFER_TTL_MINUTES
    WITHDRAWN = "withdrawn"  # accepted at a price the buyer then turned down


class LedgerEntryType(str, Enum):
    # Buyer pays (external transfer consumed into escrow)
    PAYMENT = "payment"
    ESCROW_IN = "escrow_in"
    # Settlement (holder side + payee side)
    ESCROW_RELEASE = "escrow_release"
    PAYOUT = "payout"
    COMMISSION_IN = "commission_in"
    # Refund (holder side + buyer side)
    REFUND_OUT = "refund_out"
    REFUND_IN = "refund_in"


class MessageStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
