"""Ledger-wide invariant checks.

1. Every order's wallet_transactions net to zero.
2. The sum of wallets.escrow_held equals the escrow still open per order
   according to the ledger (escrow_in + escrow_release + refund_out).
3. No wallet aggregate is negative.
"""
import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

_UNBALANCED_ORDERS_SQL = text("""
    SELECT order_id, SUM(amount) AS net
    FROM wallet_transactions
    WHERE order_id IS NOT NULL
    GROUP BY order_id
    HAVING SUM(amount) <> 0
    ORDER BY order_id
    LIMIT 100
""")
_WALLET_ESCROW_SQL = text("SELECT COALESCE(SUM(escrow_held), 0) FROM wallets")
_LEDGER_ESCROW_SQL = text("""
    SELECT COALESCE(SUM(amount), 0)
    FROM wallet_transactions
    WHERE entry_type IN ('escrow_in', 'escrow_release', 'refund_out')
""")
_NEGATIVE_WALLETS_SQL = text("""
    SELECT party_id FROM wallets
    WHERE available < 0 OR escrow_held < 0 OR total_earned < 0
""")


async def verify_ledger_invariants(db: AsyncSession) -> list[str]:
    """Returns list of violation strings (empty when the ledger is consistent)."""
    violations: list[str] = []

    for row in (await db.execute(_UNBALANCED_ORDERS_SQL)).fetchall():
        violations.append(f"order {row.order_id} nets to {row.net}, expected 0")

    wallet_escrow = (await db.execute(_WALLET_ESCROW_SQL)).scalar_one()
    ledger_escrow = (await db.execute(_LEDGER_ESCROW_SQL)).scalar_one()
    if wallet_escrow != ledger_escrow:
        violations.append(
            f"wallets hold {wallet_escrow} in escrow but ledger shows {ledger_escrow}"
        )

    for row in (await db.execute(_NEGATIVE_WALLETS_SQL)).fetchall():
        violations.append(f"wallet {row.party_id} has a negative aggregate")

    for msg in violations:
        logger.error("Ledger invariant violated: %s", msg)
    return violations
