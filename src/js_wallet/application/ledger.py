"""WalletLedger — escrow bookkeeping for orders.

Every operation appends balanced entries (the amounts of one call sum to
zero) and updates wallet aggregates inside the caller's transaction:

    hold      PAYMENT -X (payer)            ESCROW_IN +X (holder escrow_held)
    settle    ESCROW_RELEASE -X (holder)    PAYOUT / COMMISSION_IN +x_i (payees)
    refund    REFUND_OUT -X (holder)        REFUND_IN +X (payer available)

The holder is the order's supplier: funds sit in the supplier's escrow_held
until the buyer confirms receipt. Because each call is balanced, the entries
of any single order always net to zero.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.js_common.enums import LedgerEntryType
from src.js_common.errors import LedgerInvariantViolationError, WalletNotFoundError
from src.js_wallet.domain.models import LedgerEntry, Payout
from src.js_wallet.domain.repository import WalletRepositoryProtocol
from src.js_wallet.infrastructure.persistence import WalletRepository

logger = logging.getLogger(__name__)


class WalletLedger:
    def __init__(self, repo: WalletRepositoryProtocol | None = None) -> None:
        self._repo: WalletRepositoryProtocol = repo or WalletRepository()

    async def held_for_order(self, db: AsyncSession, order_id: str, holder_id: str) -> int:
        return await self._repo.order_escrow_balance(db, order_id, holder_id)

    async def hold(
        self,
        db: AsyncSession,
        order_id: str,
        payer_id: str,
        holder_id: str,
        amount: int,
    ) -> list[LedgerEntry]:
        """Move a confirmed buyer payment into the holder's escrow."""
        if amount <= 0:
            raise LedgerInvariantViolationError(
                f"escrow hold for order {order_id} must be positive, got {amount}"
            )
        payer = await self._repo.get_wallet(db, payer_id)
        if payer is None:
            raise WalletNotFoundError(payer_id)
        holder = await self._repo.credit_escrow(db, holder_id, amount)
        if holder is None:
            raise WalletNotFoundError(holder_id)

        entries = [
            await self._repo.insert_entry(
                db, payer_id, order_id, LedgerEntryType.PAYMENT.value,
                -amount, payer.available, f"Payment for order {order_id}",
            ),
            await self._repo.insert_entry(
                db, holder_id, order_id, LedgerEntryType.ESCROW_IN.value,
                amount, holder.escrow_held, f"Escrow held for order {order_id}",
            ),
        ]
        logger.info("Escrow hold order=%s holder=%s amount=%d", order_id, holder_id, amount)
        return entries

    async def _take_from_escrow(
        self,
        db: AsyncSession,
        order_id: str,
        holder_id: str,
        amount: int,
        entry_type: LedgerEntryType,
    ) -> LedgerEntry:
        held = await self._repo.order_escrow_balance(db, order_id, holder_id)
        if amount > held:
            raise LedgerInvariantViolationError(
                f"order {order_id} has {held} in escrow, cannot take {amount}"
            )
        holder = await self._repo.debit_escrow(db, holder_id, amount)
        if holder is None:
            raise LedgerInvariantViolationError(
                f"escrow_held of {holder_id} would go negative taking {amount}"
            )
        return await self._repo.insert_entry(
            db, holder_id, order_id, entry_type.value,
            -amount, holder.escrow_held, f"{entry_type.value} for order {order_id}",
        )

    async def settle(
        self,
        db: AsyncSession,
        order_id: str,
        holder_id: str,
        payouts: list[Payout],
    ) -> list[LedgerEntry]:
        """Release an order's escrow in one ESCROW_RELEASE and credit each payee.

        Zero-amount payout lines (e.g. shipping on a self-delivered order)
        are skipped.
        """
        lines = [p for p in payouts if p.amount > 0]
        if any(p.amount < 0 for p in payouts):
            raise LedgerInvariantViolationError(f"negative payout on order {order_id}")
        total = sum(p.amount for p in lines)
        if total == 0:
            raise LedgerInvariantViolationError(f"nothing to release for order {order_id}")

        entries = [
            await self._take_from_escrow(
                db, order_id, holder_id, total, LedgerEntryType.ESCROW_RELEASE
            )
        ]
        for line in lines:
            wallet = await self._repo.credit_available(db, line.party_id, line.amount, earned=True)
            if wallet is None:
                raise WalletNotFoundError(line.party_id)
            entries.append(
                await self._repo.insert_entry(
                    db, line.party_id, order_id, line.entry_type,
                    line.amount, wallet.available, f"{line.entry_type} for order {order_id}",
                )
            )
        logger.info(
            "Escrow settled order=%s total=%d payees=%s",
            order_id,
            total,
            ",".join(p.party_id for p in lines),
        )
        return entries

    async def release(
        self,
        db: AsyncSession,
        order_id: str,
        holder_id: str,
        to_party: str,
        amount: int,
    ) -> list[LedgerEntry]:
        """Release `amount` of the order's escrow to a single payee."""
        return await self.settle(db, order_id, holder_id, [Payout(to_party, amount)])

    async def refund(
        self,
        db: AsyncSession,
        order_id: str,
        holder_id: str,
        to_party: str,
        amount: int,
    ) -> list[LedgerEntry]:
        """Return escrowed funds to the payer's available balance."""
        if amount <= 0:
            raise LedgerInvariantViolationError(
                f"refund for order {order_id} must be positive, got {amount}"
            )
        out_entry = await self._take_from_escrow(
            db, order_id, holder_id, amount, LedgerEntryType.REFUND_OUT
        )
        wallet = await self._repo.credit_available(db, to_party, amount, earned=False)
        if wallet is None:
            raise WalletNotFoundError(to_party)
        in_entry = await self._repo.insert_entry(
            db, to_party, order_id, LedgerEntryType.REFUND_IN.value,
            amount, wallet.available, f"Refund for order {order_id}",
        )
        logger.info("Escrow refunded order=%s to=%s amount=%d", order_id, to_party, amount)
        return [out_entry, in_entry]
