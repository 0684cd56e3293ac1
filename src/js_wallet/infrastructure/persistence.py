"""WalletRepository — concrete implementation of WalletRepositoryProtocol.

All balance-mutating operations use atomic PostgreSQL UPDATE ... RETURNING.
A result of 0 rows means either the wallet is missing or a guard failed
(e.g. escrow_held would go negative).

Transaction ownership: the CALLER (OrderStateMachine or an application
service) commits; nothing here commits on its own.
"""

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.js_common.errors import InternalError
from src.js_wallet.domain.models import LedgerEntry, Wallet

_WALLET_COLUMNS = "party_id, available, escrow_held, total_earned, version, created_at, updated_at"
_ENTRY_COLUMNS = (
    "id, party_id, order_id, entry_type, amount, balance_after, description, created_at"
)

_CREATE_WALLET_SQL = text("""
    INSERT INTO wallets (party_id, available, escrow_held, total_earned, version)
    VALUES (:party_id, 0, 0, 0, 0)
    ON CONFLICT (party_id) DO NOTHING
""")

_GET_WALLET_SQL = text(f"SELECT {_WALLET_COLUMNS} FROM wallets WHERE party_id = :party_id")

_CREDIT_ESCROW_SQL = text(f"""
    UPDATE wallets
    SET escrow_held = escrow_held + :amount,
        version = version + 1,
        updated_at = NOW()
    WHERE party_id = :party_id
    RETURNING {_WALLET_COLUMNS}
""")

_DEBIT_ESCROW_SQL = text(f"""
    UPDATE wallets
    SET escrow_held = escrow_held - :amount,
        version = version + 1,
        updated_at = NOW()
    WHERE party_id = :party_id AND escrow_held >= :amount
    RETURNING {_WALLET_COLUMNS}
""")

_CREDIT_EARNINGS_SQL = text(f"""
    UPDATE wallets
    SET available = available + :amount,
        total_earned = total_earned + :amount,
        version = version + 1,
        updated_at = NOW()
    WHERE party_id = :party_id
    RETURNING {_WALLET_COLUMNS}
""")

_CREDIT_AVAILABLE_SQL = text(f"""
    UPDATE wallets
    SET available = available + :amount,
        version = version + 1,
        updated_at = NOW()
    WHERE party_id = :party_id
    RETURNING {_WALLET_COLUMNS}
""")

_INSERT_ENTRY_SQL = text(f"""
    INSERT INTO wallet_transactions
        (party_id, order_id, entry_type, amount, balance_after, description)
    VALUES
        (:party_id, :order_id, :entry_type, :amount, :balance_after, :description)
    RETURNING {_ENTRY_COLUMNS}
""")

# Escrow still held for one order by one holder: everything that moved into
# escrow minus everything released or refunded out of it.
_ORDER_ESCROW_SQL = text("""
    SELECT COALESCE(SUM(amount), 0)
    FROM wallet_transactions
    WHERE order_id = :order_id
      AND party_id = :holder_id
      AND entry_type IN ('escrow_in', 'escrow_release', 'refund_out')
""")

_LIST_ENTRIES_SQL = text(f"""
    SELECT {_ENTRY_COLUMNS}
    FROM wallet_transactions
    WHERE party_id = :party_id
      AND (CAST(:cursor_id AS BIGINT) IS NULL OR id < :cursor_id)
      AND (CAST(:entry_type AS TEXT) IS NULL OR entry_type = :entry_type)
    ORDER BY id DESC
    LIMIT :limit
""")


def _row_to_wallet(row: object) -> Wallet:
    return Wallet(
        party_id=row.party_id,  # type: ignore[attr-defined]
        available=row.available,  # type: ignore[attr-defined]
        escrow_held=row.escrow_held,  # type: ignore[attr-defined]
        total_earned=row.total_earned,  # type: ignore[attr-defined]
        version=row.version,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


def _row_to_entry(row: object) -> LedgerEntry:
    return LedgerEntry(
        id=row.id,  # type: ignore[attr-defined]
        party_id=row.party_id,  # type: ignore[attr-defined]
        order_id=row.order_id,  # type: ignore[attr-defined]
        entry_type=row.entry_type,  # type: ignore[attr-defined]
        amount=row.amount,  # type: ignore[attr-defined]
        balance_after=row.balance_after,  # type: ignore[attr-defined]
        description=row.description,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


class WalletRepository:
    """Concrete repository — all operations atomic at the SQL level."""

    async def create_wallet(self, db: AsyncSession, party_id: str) -> None:
        await db.execute(_CREATE_WALLET_SQL, {"party_id": party_id})

    async def get_wallet(self, db: AsyncSession, party_id: str) -> Wallet | None:
        result = await db.execute(_GET_WALLET_SQL, {"party_id": party_id})
        row = result.fetchone()
        return _row_to_wallet(row) if row else None

    async def _update(self, db: AsyncSession, sql: Any, party_id: str, amount: int) -> Wallet | None:
        result = await db.execute(sql, {"party_id": party_id, "amount": amount})
        row = result.fetchone()
        return _row_to_wallet(row) if row else None

    async def credit_escrow(
        self, db: AsyncSession, party_id: str, amount: int
    ) -> Wallet | None:
        return await self._update(db, _CREDIT_ESCROW_SQL, party_id, amount)

    async def debit_escrow(
        self, db: AsyncSession, party_id: str, amount: int
    ) -> Wallet | None:
        return await self._update(db, _DEBIT_ESCROW_SQL, party_id, amount)

    async def credit_available(
        self, db: AsyncSession, party_id: str, amount: int, earned: bool
    ) -> Wallet | None:
        sql = _CREDIT_EARNINGS_SQL if earned else _CREDIT_AVAILABLE_SQL
        return await self._update(db, sql, party_id, amount)

    async def insert_entry(
        self,
        db: AsyncSession,
        party_id: str,
        order_id: str | None,
        entry_type: str,
        amount: int,
        balance_after: int,
        description: str,
    ) -> LedgerEntry:
        result = await db.execute(
            _INSERT_ENTRY_SQL,
            {
                "party_id": party_id,
                "order_id": order_id,
                "entry_type": entry_type,
                "amount": amount,
                "balance_after": balance_after,
                "description": description,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Ledger insert returned no rows — this should never happen")
        return _row_to_entry(row)

    async def order_escrow_balance(
        self, db: AsyncSession, order_id: str, holder_id: str
    ) -> int:
        result = await db.execute(
            _ORDER_ESCROW_SQL, {"order_id": order_id, "holder_id": holder_id}
        )
        return int(result.scalar_one())

    async def list_entries(
        self,
        db: AsyncSession,
        party_id: str,
        cursor_id: int | None,
        limit: int,
        entry_type: str | None,
    ) -> list[LedgerEntry]:
        result = await db.execute(
            _LIST_ENTRIES_SQL,
            {
                "party_id": party_id,
                "cursor_id": cursor_id,
                "entry_type": entry_type,
                "limit": limit,
            },
        )
        return [_row_to_entry(row) for row in result.fetchall()]
