"""WalletApplicationService — read side of the wallet module.

Balance mutations only happen through WalletLedger as side effects of
order transitions; this service exposes balances and history.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from src.js_common.errors import WalletNotFoundError
from src.js_common.money import rupiah_to_display
from src.js_wallet.application.schemas import (
    LedgerEntryItem,
    LedgerResponse,
    WalletResponse,
    cursor_decode,
    cursor_encode,
)
from src.js_wallet.domain.repository import WalletRepositoryProtocol
from src.js_wallet.infrastructure.persistence import WalletRepository


class WalletApplicationService:
    def __init__(self, repo: WalletRepositoryProtocol | None = None) -> None:
        self._repo: WalletRepositoryProtocol = repo or WalletRepository()

    async def get_wallet(self, db: AsyncSession, party_id: str) -> WalletResponse:
        wallet = await self._repo.get_wallet(db, party_id)
        if wallet is None:
            raise WalletNotFoundError(party_id)
        return WalletResponse.from_amounts(
            party_id, wallet.available, wallet.escrow_held, wallet.total_earned
        )

    async def list_ledger(
        self,
        db: AsyncSession,
        party_id: str,
        cursor: str | None,
        limit: int,
        entry_type: str | None,
    ) -> LedgerResponse:
        cursor_id = cursor_decode(cursor)
        # Fetch limit+1 to detect has_more without a COUNT(*) query
        entries = await self._repo.list_entries(db, party_id, cursor_id, limit + 1, entry_type)
        has_more = len(entries) > limit
        page = entries[:limit]

        items = [
            LedgerEntryItem(
                id=e.id,
                order_id=e.order_id,
                entry_type=e.entry_type,
                amount=e.amount,
                amount_display=rupiah_to_display(e.amount),
                balance_after=e.balance_after,
                description=e.description,
                created_at=e.created_at.isoformat() if e.created_at else "",
            )
            for e in page
        ]
        next_cursor = cursor_encode(page[-1].id) if has_more and page else None
        return LedgerResponse(items=items, next_cursor=next_cursor, has_more=has_more)
