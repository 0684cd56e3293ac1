"""Repository Protocol — dependency inversion for testability."""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.js_wallet.domain.models import LedgerEntry, Wallet


class WalletRepositoryProtocol(Protocol):
    async def create_wallet(self, db: AsyncSession, party_id: str) -> None: ...

    async def get_wallet(self, db: AsyncSession, party_id: str) -> Wallet | None: ...

    async def credit_escrow(
        self, db: AsyncSession, party_id: str, amount: int
    ) -> Wallet | None: ...

    async def debit_escrow(
        self, db: AsyncSession, party_id: str, amount: int
    ) -> Wallet | None: ...

    async def credit_available(
        self, db: AsyncSession, party_id: str, amount: int, earned: bool
    ) -> Wallet | None: ...

    async def insert_entry(
        self,
        db: AsyncSession,
        party_id: str,
        order_id: str | None,
        entry_type: str,
        amount: int,
        balance_after: int,
        description: str,
    ) -> LedgerEntry: ...

    async def order_escrow_balance(
        self, db: AsyncSession, order_id: str, holder_id: str
    ) -> int: ...

    async def list_entries(
        self,
        db: AsyncSession,
        party_id: str,
        cursor_id: int | None,
        limit: int,
        entry_type: str | None,
    ) -> list[LedgerEntry]: ...
